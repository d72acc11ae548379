"""
exporter.py — Export Layer for on-call rosters

Outputs:
  - CSV: flat (date, kind, slot_id, user_id, physician), holes as UNFILLED
  - Excel (.xlsx): date × kind grid with physician names, plus a Holes sheet
  - Fairness report (.txt): per-physician duty counts vs availability and target
  - Chart (.png): duties per physician (matplotlib)

Usage:
  from oncall_roster.exporter import export_to_csv, export_to_excel, export_fairness_report
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .reporting import PlanningResult
from .schedule_config import SLOT_KINDS

logger = logging.getLogger(__name__)

UNFILLED = "UNFILLED"


def _rows(result: PlanningResult) -> List[Dict[str, Any]]:
    rows = [
        {
            "date": a["date"],
            "kind": a["kind"],
            "slot_id": a["slot_id"],
            "user_id": a["user_id"],
            "physician": a["display_name"],
        }
        for a in result.assignments
    ]
    rows += [
        {"date": h["date"], "kind": h["kind"], "slot_id": h["slot_id"],
         "user_id": "", "physician": UNFILLED}
        for h in result.holes_list
    ]
    rows.sort(key=lambda r: (r["date"] or "", r["kind"] or ""))
    return rows


# ---------------------------------------------------------------------------
# CSV Export
# ---------------------------------------------------------------------------

def export_to_csv(result: PlanningResult, output_path: Path) -> None:
    """
    Export roster to flat CSV: date, kind, slot_id, user_id, physician.
    """
    import csv
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=["date", "kind", "slot_id", "user_id", "physician"])
        writer.writeheader()
        for row in _rows(result):
            writer.writerow(row)

    logger.info(f"CSV exported → {output_path}")


# ---------------------------------------------------------------------------
# Excel Export
# ---------------------------------------------------------------------------

def export_to_excel(
    result: PlanningResult,
    output_path: Path,
    kind_order: Optional[List[str]] = None,
) -> None:
    """
    Export roster to a formatted Excel workbook.

    Sheet "Roster": rows=date, columns=kind, cells=physician (or UNFILLED).
    Sheet "Holes":  one row per hole with its candidate count.

    Args:
        result:      PlanningResult from generate_planning
        output_path: .xlsx file path
        kind_order:  Column order (defaults to slot kind table order)
    """
    import pandas as pd

    output_path.parent.mkdir(parents=True, exist_ok=True)
    kind_order = kind_order or list(SLOT_KINDS)

    df = pd.DataFrame(_rows(result), columns=["date", "kind", "slot_id", "user_id", "physician"])
    holes = pd.DataFrame(result.holes_list, columns=["date", "kind", "slot_id", "candidate_count"])

    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        if df.empty:
            df.to_excel(writer, sheet_name="Roster", index=False)
        else:
            grid = df.pivot_table(
                index="date",
                columns="kind",
                values="physician",
                aggfunc=lambda x: "; ".join(x),
            )
            ordered = [k for k in kind_order if k in grid.columns]
            rest = [k for k in grid.columns if k not in kind_order]
            grid = grid[ordered + rest].fillna("")
            grid.to_excel(writer, sheet_name="Roster")
            _format_excel_grid(writer, "Roster")
        holes.to_excel(writer, sheet_name="Holes", index=False)
        _format_excel_grid(writer, "Holes")

    logger.info(f"Excel exported → {output_path}")


def _format_excel_grid(writer: Any, sheet_name: str) -> None:
    """Column widths, bold header, alternate row shading, UNFILLED in red."""
    from openpyxl.styles import Alignment, Font, PatternFill

    ws = writer.sheets[sheet_name]
    header_fill = PatternFill("solid", fgColor="1F4E79")
    header_font = Font(bold=True, color="FFFFFF")
    for cell in ws[1]:
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center")

    for col in ws.columns:
        max_len = max((len(str(c.value)) for c in col if c.value), default=8)
        ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 30)

    alt = PatternFill("solid", fgColor="EBF3FB")
    unfilled_font = Font(bold=True, color="B22222")
    for i, row in enumerate(ws.iter_rows(min_row=2), start=2):
        for cell in row:
            if i % 2 == 0:
                cell.fill = alt
            if cell.value == UNFILLED:
                cell.font = unfilled_font


# ---------------------------------------------------------------------------
# Fairness Report
# ---------------------------------------------------------------------------

def export_fairness_report(
    metrics: Dict[str, Any],
    result: PlanningResult,
    output_path: Path,
    top_n: int = 3,
    bottom_n: int = 3,
) -> str:
    """
    Export fairness audit report (text format).

    Includes:
      - mean / std / CV of duties per physician
      - per-physician duties, availability count, target level
      - per-kind breakdown
      - hole count

    Args:
        metrics:     Output of engine.calculate_fairness_metrics()
        result:      PlanningResult (names, targets, availability)
        output_path: .txt file path
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    counts = metrics.get("counts", {})
    per_kind = metrics.get("per_kind", {})
    mean_val = metrics.get("mean", 0)
    users = result.users_index

    def name(uid: str) -> str:
        return users.get(uid, {}).get("name", uid)

    sorted_ids = sorted(counts, key=lambda u: (-counts.get(u, 0), name(u).casefold(), u))

    sep = "=" * 70
    lines = [
        sep,
        f"  FAIRNESS AUDIT REPORT  period {result.period_id}",
        sep,
        "",
        f"  Duties assigned:       {result.total_score}",
        f"  Holes:                 {result.holes}",
        f"  Mean per physician:    {mean_val:.2f}",
        f"  Std Dev:               {metrics.get('std', 0):.2f}",
        f"  CV:                    {metrics.get('cv', 0):.2f}%",
        f"  Min / Max:             {metrics.get('min', 0)} / {metrics.get('max', 0)}",
        "",
        "─" * 70,
        "  Per-Physician Duties",
        "─" * 70,
        f"  {'Name':<28} {'Duties':>6} {'Avail':>6} {'Target':>7}  {'Δ Mean':>7}",
    ]
    for uid in sorted_ids:
        info = users.get(uid, {})
        target = info.get("target_level")
        lines.append(
            f"  {name(uid):<28} {counts.get(uid, 0):>6d} {info.get('avail_count', 0):>6d} "
            f"{'-' if target is None else target:>7}  {counts.get(uid, 0) - mean_val:>+7.2f}"
        )

    lines += ["", "─" * 70, "  Per-Kind Breakdown", "─" * 70]
    if per_kind:
        for kind in [k for k in SLOT_KINDS if k in per_kind]:
            kc = per_kind[kind]
            lines.append(f"  {kind:<16} {sum(kc.values()):>4d} duties over {len(kc)} physicians")
    else:
        lines.append("  (no assignments)")

    lines += ["", "─" * 70, "  Most Assigned", "─" * 70]
    for uid in sorted_ids[:top_n]:
        lines.append(f"  {name(uid):<28} {counts.get(uid, 0)}")
    lines += ["", "─" * 70, "  Least Assigned", "─" * 70]
    for uid in sorted_ids[-bottom_n:][::-1]:
        lines.append(f"  {name(uid):<28} {counts.get(uid, 0)}")

    lines.append("")
    lines.append(sep)

    report_text = "\n".join(lines)
    with open(output_path, "w") as f:
        f.write(report_text)

    logger.info(f"Fairness report exported → {output_path}")
    return report_text


# ---------------------------------------------------------------------------
# Chart
# ---------------------------------------------------------------------------

def export_assignment_chart(
    metrics: Dict[str, Any],
    result: PlanningResult,
    output_path: Path,
) -> None:
    """Bar chart of duties per physician with the mean and ±1 SD lines."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    output_path.parent.mkdir(parents=True, exist_ok=True)
    counts = metrics.get("counts", {})
    mean_val = metrics.get("mean", 0)
    std_val = metrics.get("std", 0)

    ids = sorted(counts, key=lambda u: counts.get(u, 0), reverse=True)
    labels = [result.users_index.get(u, {}).get("name", u) for u in ids]
    values = [counts.get(u, 0) for u in ids]
    x = range(len(ids))

    fig, ax = plt.subplots(figsize=(13, 5))
    colors = ["#b22222" if v > mean_val + std_val else "#1a3d7c" if v < mean_val - std_val else "#4a90d9"
              for v in values]
    ax.bar(x, values, color=colors, alpha=0.85, width=0.65)
    ax.axhline(mean_val, color="crimson", linewidth=1.8, linestyle="--", label=f"Mean: {mean_val:.1f}")
    ax.axhline(mean_val + std_val, color="orange", linewidth=1, linestyle=":")
    ax.axhline(mean_val - std_val, color="orange", linewidth=1, linestyle=":")
    ax.set_xticks(list(x))
    ax.set_xticklabels(labels, rotation=40, ha="right", fontsize=9)
    ax.set_ylabel("Duties")
    ax.set_title(
        f"Duties per Physician ({result.period_id})\nCV = {metrics.get('cv', 0):.1f}%, "
        f"holes = {result.holes}",
        fontsize=13, fontweight="bold",
    )
    ax.legend()
    ax.grid(axis="y", alpha=0.3)
    fig.tight_layout()
    fig.savefig(output_path, dpi=150)
    plt.close(fig)

    logger.info(f"Chart exported → {output_path}")
