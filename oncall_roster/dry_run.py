"""
dry_run.py — Roster generation from the command line

Full orchestration:
  1. Open the row store (CSV snapshot directory or Supabase from env)
  2. Build the availability summary, resolve quotas, run the engine
  3. Check constraints (hard + soft) and snapshot sanity;
     with --commit, persist only when no hard violation was found
  4. Calculate fairness metrics
  5. Export CSV, Excel, fairness report, violations report (+ chart)
  6. Print summary; optionally email physicians after a commit

Nothing is written to the store unless --commit is given.

Usage:
  python -m oncall_roster.dry_run --period 2025-Q4 --data-dir data/
  python -m oncall_roster.dry_run --period <uuid> --commit --notify
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .config import DEFAULT_DATA_DIR, DEFAULT_OUTPUT_DIR, Settings, get_settings, require_supabase
from .constraints import ConstraintChecker
from .engine import calculate_fairness_metrics
from .errors import PlanningError
from .exporter import export_assignment_chart, export_fairness_report, export_to_csv, export_to_excel
from .notifier import EmailClient, notify_planning
from .planner import replace_assignments, run_planning
from .store import SnapshotStore
from .supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


def open_store(settings: Settings, data_dir: Optional[Path] = None) -> Any:
    """CSV snapshot when a directory is given (or Supabase is not configured)."""
    if data_dir is not None:
        return SnapshotStore(data_dir)
    if settings.supabase_url or settings.supabase_service_key:
        require_supabase(settings)
        return SupabaseClient(settings.supabase_url, settings.supabase_service_key)
    return SnapshotStore(DEFAULT_DATA_DIR)


# ---------------------------------------------------------------------------
# Main orchestrator
# ---------------------------------------------------------------------------

def run_dry_run(
    period_id: str,
    store: Any,
    output_dir: Path = DEFAULT_OUTPUT_DIR,
    commit: bool = False,
    visual: bool = False,
    soft_max_per_month: Optional[int] = None,
    email_client: Optional[EmailClient] = None,
) -> Dict[str, Any]:
    """
    Generate the roster of one period and export it.

    Args:
        period_id:   Period to plan
        store:       SupabaseClient or SnapshotStore
        output_dir:  Directory for output files
        commit:      Replace persisted assignments with the result
        visual:      Also write a matplotlib chart
        soft_max_per_month: Override of the level-5 monthly cap
        email_client: When given (and commit), email physicians afterwards

    Returns:
        Dict with result, metrics, violations, output paths, notification
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    safe_period = "".join(c if c.isalnum() or c in "-_" else "_" for c in period_id)
    prefix = f"{'commit' if commit else 'dry_run'}_{safe_period}"
    sep = "=" * 70

    print(f"\n{sep}")
    print(f"  {'COMMIT MODE: persisted assignments will be replaced' if commit else 'DRY RUN MODE: nothing is written'}")
    print(f"  Period: {period_id}")
    print(f"  Store:  {store!r}" if isinstance(store, SnapshotStore) else "  Store:  Supabase")
    print(f"{sep}\n")

    # ── 1. Compute ─────────────────────────────────────────────────────────
    print("Step 1/5: Building roster...")
    kwargs = {} if soft_max_per_month is None else {"soft_max_per_month": soft_max_per_month}
    run = run_planning(store, period_id, dry_run=True, **kwargs)
    report = run.report
    summary = run.summary
    print(f"  ✓ {len(summary.slots)} slots | {len(summary.users_index)} physicians | "
          f"{len(summary.months)} months")
    print(f"  ✓ {report.total_score} assignments | {report.holes} holes")

    # ── 2. Constraint checking ─────────────────────────────────────────────
    print("\nStep 2/5: Checking constraints...")
    checker = ConstraintChecker(summary, run.quotas)
    input_errors, input_warnings = checker.validate_inputs()
    for err in input_errors:
        print(f"  ✗ INPUT ERROR: {err}")
    for w in input_warnings:
        print(f"  ⚠ WARNING: {w}")

    hard_violations, soft_violations = checker.check_all(run.engine.assignments, run.engine.holes)
    h_count = len(hard_violations)
    s_count = len(soft_violations)
    status = "✓" if h_count == 0 else "✗"
    print(f"  {status} Hard violations: {h_count}")
    print(f"    Soft violations: {s_count}")

    committed = False
    if commit and h_count:
        print("  ✗ Commit skipped: hard violations")
        logger.error(f"Period {period_id}: {h_count} hard violations, nothing persisted")
    elif commit:
        rows = [a.to_row(period_id) for a in run.engine.assignments]
        report.inserted = replace_assignments(store, period_id, rows)
        report.dry_run = False
        committed = True
        print(f"  ✓ {report.inserted} rows persisted")

    # ── 3. Fairness ────────────────────────────────────────────────────────
    print("\nStep 3/5: Fairness metrics...")
    metrics = calculate_fairness_metrics(
        run.engine.assignments,
        {s.id: s for s in summary.slots},
        summary.users_index,
        holes=report.holes,
    )
    print(f"  ✓ Mean {metrics['mean']:.2f} duties | CV {metrics['cv']:.1f}% | "
          f"min {metrics['min']} / max {metrics['max']}")

    # ── 4. Export ──────────────────────────────────────────────────────────
    print("\nStep 4/5: Exporting outputs...")
    csv_path        = output_dir / f"{prefix}_roster.csv"
    xlsx_path       = output_dir / f"{prefix}_roster.xlsx"
    report_path     = output_dir / f"{prefix}_fairness_report.txt"
    violations_path = output_dir / f"{prefix}_violations.txt"
    json_path       = output_dir / f"{prefix}_result.json"

    export_to_csv(report, csv_path)
    export_to_excel(report, xlsx_path)
    export_fairness_report(metrics, report, report_path, top_n=5, bottom_n=5)

    with open(json_path, "w") as f:
        json.dump(report.as_dict(), f, indent=2, ensure_ascii=False, default=str)

    with open(violations_path, "w") as f:
        f.write("=== Constraint Violations ===\n\n")
        f.write(f"HARD ({h_count}):\n")
        for v in hard_violations:
            f.write(f"  {v}\n")
        f.write(f"\nSOFT ({s_count}):\n")
        for v in soft_violations:
            f.write(f"  {v}\n")

    print(f"  ✓ CSV:       {csv_path.name}")
    print(f"  ✓ Excel:     {xlsx_path.name}")
    print(f"  ✓ Report:    {report_path.name}")
    print(f"  ✓ Violations:{violations_path.name}")
    print(f"  ✓ JSON:      {json_path.name}")

    outputs = {
        "csv": csv_path,
        "excel": xlsx_path,
        "report": report_path,
        "violations": violations_path,
        "json": json_path,
    }
    if visual:
        chart_path = output_dir / f"{prefix}_duties.png"
        export_assignment_chart(metrics, report, chart_path)
        outputs["chart"] = chart_path
        print(f"  ✓ Chart:     {chart_path.name}")

    # ── 5. Notify ──────────────────────────────────────────────────────────
    notification = None
    print("\nStep 5/5: Notifications...")
    if email_client is not None and committed:
        notification = notify_planning(store, email_client, period_id)
        print(f"  ✓ Sent {notification['sent_count']} | failed {notification['failed_count']}")
        for failure in notification["failed"]:
            print(f"  ✗ {failure['to']}: {failure.get('error')}")
    elif email_client is not None and commit:
        print("  ⚠ notifications skipped: nothing was persisted")
    elif email_client is not None:
        print("  ⚠ --notify ignored without --commit (emails describe persisted assignments)")
    else:
        print("  - skipped")

    # ── Summary ────────────────────────────────────────────────────────────
    print(f"\n{sep}")
    print("  SUMMARY")
    print(f"{sep}")
    print(f"  Period:            {period_id}")
    print(f"  Assignments:       {report.total_score}")
    print(f"  Holes:             {report.holes}")
    print(f"  Duty CV:           {metrics['cv']:.2f}%")
    print(f"  Hard violations:   {h_count}  {status}")
    print(f"  Soft violations:   {s_count}")

    if report.holes_list:
        print("\n  Holes:")
        for h in report.holes_list:
            print(f"    {h['date']}  {h['kind']:<14} {h['candidate_count']} available")

    print(f"\n{sep}\n")

    return {
        "result":          report,
        "metrics":         metrics,
        "hard_violations": hard_violations,
        "soft_violations": soft_violations,
        "notification":    notification,
        "outputs":         outputs,
    }


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main(argv=None):
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    parser = argparse.ArgumentParser(
        description="Generate the on-call roster of a period (dry run unless --commit)"
    )
    parser.add_argument("--period",     required=True, help="Period id")
    parser.add_argument("--data-dir",   default=None,  help="CSV snapshot directory (default: Supabase from env, else data/)")
    parser.add_argument("--output-dir", default=None,  help="Output directory (default: outputs/)")
    parser.add_argument("--commit",     action="store_true", help="Replace persisted assignments with the result")
    parser.add_argument("--visual",     action="store_true", help="Write a duties-per-physician chart")
    parser.add_argument("--notify",     action="store_true", help="Email physicians after --commit")
    parser.add_argument("--soft-max",   type=int, default=None, help="Monthly cap for target level 5 / unset")
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
        store = open_store(settings, Path(args.data_dir) if args.data_dir else None)
    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(2)

    email_client = None
    if args.notify:
        if not settings.resend_api_key:
            print("Error: --notify requires RESEND_API_KEY")
            sys.exit(2)
        email_client = EmailClient(settings.resend_api_key, from_email=settings.from_email)

    soft_max = args.soft_max if args.soft_max is not None else settings.soft_max_per_month
    out_dir = Path(args.output_dir) if args.output_dir else DEFAULT_OUTPUT_DIR

    try:
        outcome = run_dry_run(
            args.period,
            store,
            output_dir=out_dir,
            commit=args.commit,
            visual=args.visual,
            soft_max_per_month=soft_max,
            email_client=email_client,
        )
    except (PlanningError, ValueError, FileNotFoundError) as e:
        logger.error(f"Roster generation failed: {e}")
        sys.exit(1)

    if outcome["hard_violations"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
