"""
notifier.py — Planning emails

Sends each physician the list of duties persisted for a period, through the
Resend HTTP API. Runs as its own step after a commit; a failed email never
touches the persisted roster.

Dispatch is throttled (the API allows about two requests per second) and
retried with exponential backoff on 429, 5xx and connection errors.
"""

import html
import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import requests

from .config import DEFAULT_FROM_EMAIL
from .errors import EmailDeliveryError
from .models import parse_date
from .schedule_config import (
    EMAIL_BACKOFF_BASE_SECONDS,
    EMAIL_BACKOFF_CAP_SECONDS,
    EMAIL_MAX_RETRIES,
    EMAIL_THROTTLE_SECONDS,
    FRENCH_MONTHS,
    FRENCH_WEEKDAYS,
    kind_range_label,
)

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

CELL_STYLE = "padding:6px 8px;border:1px solid #e5e7eb;"


# ---------------------------------------------------------------------------
# Email API client
# ---------------------------------------------------------------------------

class EmailClient:
    """
    Client for the Resend transactional email API
    """

    def __init__(
        self,
        api_key: str,
        from_email: str = DEFAULT_FROM_EMAIL,
        api_url: str = RESEND_API_URL,
        timeout: float = 30,
        session: Optional[requests.Session] = None
    ):
        self.from_email = from_email
        self.api_url = api_url
        self.timeout = timeout

        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json'
        })

    def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Send one message

        Raises:
            EmailDeliveryError: rejected or unreachable; `retryable` is set
            for rate limiting, server errors and connection failures
        """
        payload = {
            'from': self.from_email,
            'to': to,
            'subject': subject,
            'html': html_body,
        }
        if text_body:
            payload['text'] = text_body

        try:
            response = self.session.post(self.api_url, json=payload, timeout=self.timeout)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise EmailDeliveryError(f"Email API unreachable: {e}", retryable=True) from e
        except requests.exceptions.RequestException as e:
            raise EmailDeliveryError(f"Email request failed: {e}") from e

        status = response.status_code
        if status >= 400:
            raise EmailDeliveryError(
                f"Resend error: {status} {response.text}",
                status_code=status,
                retryable=status == 429 or status >= 500,
            )
        try:
            return response.json()
        except ValueError:
            return {}


# ---------------------------------------------------------------------------
# Message building
# ---------------------------------------------------------------------------

def format_date_fr(d: date) -> str:
    """date(2025, 10, 1) -> 'Mercredi 1er octobre'"""
    weekday = FRENCH_WEEKDAYS[d.weekday()].capitalize()
    day = "1er" if d.day == 1 else str(d.day)
    return f"{weekday} {day} {FRENCH_MONTHS[d.month - 1]}"


@dataclass
class EmailMessage:
    to: str
    name: str
    subject: str
    html: str
    text: str


def build_messages(period_label: str, rows: List[Dict[str, Any]]) -> List[EmailMessage]:
    """
    One message per physician with an email.

    Args:
        period_label: e.g. 'T4 2025'
        rows: [{user_id, email, name, date, kind}]; rows without email are skipped
    """
    by_user: Dict[str, Dict[str, Any]] = {}
    for r in rows:
        if not r.get("user_id") or not r.get("email"):
            continue
        entry = by_user.setdefault(
            r["user_id"], {"name": r.get("name") or r["email"], "email": r["email"], "items": []}
        )
        entry["items"].append((parse_date(r["date"]), r["kind"]))

    subject = f"Planning {period_label} - MMG"
    messages = []
    for entry in by_user.values():
        items = sorted(entry["items"])
        name = entry["name"]

        html_rows = "".join(
            f'<tr><td style="{CELL_STYLE}">{format_date_fr(d)}</td>'
            f'<td style="{CELL_STYLE}">{html.escape(kind_range_label(k))}</td></tr>'
            for d, k in items
        )
        html_body = (
            '<div style="font-family:system-ui,Arial,sans-serif;">'
            f'<h2 style="margin:0 0 8px 0;">Bonjour {html.escape(name)},</h2>'
            f'<p>Voici vos gardes pour <strong>{html.escape(period_label)}</strong> :</p>'
            '<table cellspacing="0" cellpadding="0" style="border-collapse:collapse;">'
            f'<thead><tr><th align="left" style="{CELL_STYLE}">Date</th>'
            f'<th align="left" style="{CELL_STYLE}">Créneau</th></tr></thead>'
            f'<tbody>{html_rows}</tbody></table>'
            '<p style="color:#6b7280;">Cet email a été envoyé automatiquement. '
            "En cas d'erreur, merci de contacter l'administrateur.</p>"
            '</div>'
        )
        text_lines = [f"Bonjour {name},", "", f"Voici vos gardes pour {period_label} :"]
        text_lines += [f"- {format_date_fr(d)} : {kind_range_label(k)}" for d, k in items]
        messages.append(EmailMessage(
            to=entry["email"], name=name, subject=subject,
            html=html_body, text="\n".join(text_lines),
        ))
    return messages


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def send_with_throttle(
    client: EmailClient,
    messages: List[EmailMessage],
    delay: float = EMAIL_THROTTLE_SECONDS,
    max_retries: int = EMAIL_MAX_RETRIES,
    sleep: Callable[[float], None] = time.sleep,
) -> List[Dict[str, Any]]:
    """
    Send messages one by one.

    Returns:
        [{ok, to, error?}] in message order
    """
    results = []
    for msg in messages:
        if delay > 0:
            sleep(delay)
        attempt = 0
        while True:
            try:
                client.send(msg.to, msg.subject, msg.html, msg.text)
                results.append({"ok": True, "to": msg.to})
                break
            except EmailDeliveryError as e:
                if e.retryable and attempt < max_retries:
                    wait = min(EMAIL_BACKOFF_CAP_SECONDS, EMAIL_BACKOFF_BASE_SECONDS * 2 ** attempt)
                    logger.warning(f"Email to {msg.to} failed ({e}); retry in {wait:.1f}s")
                    sleep(wait)
                    attempt += 1
                    continue
                logger.error(f"Email to {msg.to} failed: {e}")
                results.append({"ok": False, "to": msg.to, "error": str(e)})
                break
    return results


def notify_planning(
    store: Any,
    client: EmailClient,
    period_id: str,
    delay: float = EMAIL_THROTTLE_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """
    Email every physician their persisted duties for `period_id`.

    Raises:
        ValueError: period_id missing, period unknown, or no assigned
                    physician has an email address

    Returns:
        {period_id, sent_count, failed_count, failed}
    """
    if not period_id:
        raise ValueError("period_id is required")
    period = store.fetch_period(period_id)
    if period is None:
        raise ValueError(f"Period not found: {period_id}")

    assignments = store.fetch_assignments(period_id)
    slot_by_id = {s.id: s for s in store.fetch_slots(period_id)}
    user_ids = sorted({a["user_id"] for a in assignments if a.get("user_id")})
    profiles = store.fetch_profiles(user_ids) if user_ids else {}

    rows = []
    for a in assignments:
        slot = slot_by_id.get(a["slot_id"])
        profile = profiles.get(a.get("user_id"))
        if slot is None or profile is None or not profile.email:
            continue
        rows.append({
            "user_id": profile.user_id,
            "email": profile.email,
            "name": profile.full_name if profile.full_name != profile.user_id else None,
            "date": slot.date,
            "kind": slot.kind,
        })

    messages = build_messages(period.get("label") or period_id, rows)
    if not messages:
        raise ValueError(f"No assignment with an email address for period {period_id}")

    logger.info(f"Sending {len(messages)} planning emails for period {period_id}")
    results = send_with_throttle(client, messages, delay=delay, sleep=sleep)
    failed = [r for r in results if not r["ok"]]
    return {
        "period_id": period_id,
        "sent_count": len(results) - len(failed),
        "failed_count": len(failed),
        "failed": failed,
    }
