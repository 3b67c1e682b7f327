"""
Remove duplicate time bands / price rules for every course (or the given ones)
and write a JSON report.

Each course is deduped in its own batch; a failed course is reported and can be
re-run on its own. Do not run this while an admin is deduping the same course.

Usage:
  python run_dedupe_all.py --type all
  python run_dedupe_all.py --course puerto-los-cabos --type priceRulesByName --strategy latest
  python run_dedupe_all.py --dry-run --report dedupe-report.json
"""

from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone

from teeprice.database import get_session_factory
from teeprice.dedupe import DedupeService, DedupeType, run_dedupe
from teeprice.errors import PricingError
from teeprice.logging_config import setup_logging
from teeprice.rule_store import SqlRuleStore


def main() -> int:
    p = argparse.ArgumentParser()
    p.add_argument("--course", action="append", default=[], help="Course id to dedupe. Can be repeated; default is every course.")
    p.add_argument("--type", default=DedupeType.ALL.value, choices=[t.value for t in DedupeType])
    p.add_argument("--strategy", default="highest_priority", choices=["highest_priority", "latest"], help="Only used with priceRulesByName.")
    p.add_argument("--dry-run", action="store_true", help="Show what would be removed, but do not delete anything.")
    p.add_argument("--report", help="Write a JSON report to this path.")
    args = p.parse_args()

    setup_logging()
    store = SqlRuleStore(get_session_factory())
    service = DedupeService(store)

    course_ids = args.course or store.list_course_ids()
    if not course_ids:
        raise SystemExit("No courses with pricing data found.")

    results = []
    failures = 0
    for course_id in course_ids:
        entry = {"courseId": course_id, "type": args.type}
        try:
            if args.dry_run:
                plan = service.plan(course_id, args.type, args.strategy)
                entry.update(
                    removedCount=plan.removed_count,
                    timeBandIds=list(plan.time_band_ids),
                    priceRuleIds=list(plan.price_rule_ids),
                )
            else:
                entry["removedCount"] = run_dedupe(service, course_id, args.type, args.strategy)
            entry["ok"] = True
        except PricingError as e:
            failures += 1
            entry.update(ok=False, error=str(e))
        results.append(entry)
        status = "OK" if entry["ok"] else f"FAILED ({entry['error']})"
        print(f"  {course_id}: {entry.get('removedCount', 0)} {'to remove' if args.dry_run else 'removed'} - {status}")

    total = sum(r.get("removedCount", 0) for r in results)
    print(f"\n{'Dry run' if args.dry_run else 'Done'}: {total} item(s) across {len(results)} course(s), {failures} failure(s).")

    if args.report:
        report = {
            "generatedAt": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "dryRun": args.dry_run,
            "type": args.type,
            "results": results,
        }
        with open(args.report, "w", encoding="utf-8") as fh:
            json.dump(report, fh, indent=2)
        print(f"Report written to {args.report}")

    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
