#!/usr/bin/env python3
"""Seed or inspect a user's arcs.

Usage examples:
  python scripts/seed_arc.py seed --user alice
  python scripts/seed_arc.py list --user alice --json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from primer.core.exceptions import ArcStateError
from primer.core.logging_config import setup_logging
from primer.curation.arc_lifecycle import ArcLifecycleTracker
from primer.store import ArcStore, BundleStore, InsightStore


def _tracker(db_path: str | None) -> ArcLifecycleTracker:
    path = Path(db_path) if db_path else None
    return ArcLifecycleTracker(ArcStore(path), BundleStore(path), InsightStore(path))


def cmd_seed(args: argparse.Namespace) -> int:
    tracker = _tracker(args.db)
    try:
        arc = tracker.seed_starter_arc(args.user)
    except ArcStateError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    print(f"Seeded arc {arc.id} '{arc.theme}' for {args.user} (starts {arc.start_date})")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    store = ArcStore(Path(args.db) if args.db else None)
    arcs = store.list_arcs(args.user)
    if args.json:
        print(json.dumps([a.model_dump(mode="json") for a in arcs], indent=2, ensure_ascii=False))
        return 0

    if not arcs:
        print("(no arcs)")
        return 0

    for arc in arcs:
        state = "active" if arc.is_active else f"completed {arc.completed_date:%Y-%m-%d}"
        days = store.bundle_count_for_arc(arc.id)
        print(f"{arc.id} :: {arc.theme} [{state}]")
        print(f"  start={arc.start_date} phase={arc.current_phase.value} days={days}/{arc.target_duration_days}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Seed and inspect Primer arcs.")
    parser.add_argument("--db", default=None, help="SQLite path (defaults to PRIMER_DB_PATH)")
    sub = parser.add_subparsers(dest="command")

    seed_parser = sub.add_parser("seed", help="Create the starter arc for a user")
    seed_parser.add_argument("--user", required=True)
    seed_parser.set_defaults(func=cmd_seed)

    list_parser = sub.add_parser("list", help="List a user's arcs")
    list_parser.add_argument("--user", required=True)
    list_parser.add_argument("--json", action="store_true")
    list_parser.set_defaults(func=cmd_list)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1
    setup_logging(log_to_file=False)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
