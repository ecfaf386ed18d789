#!/usr/bin/env python3
"""Run one curation for (user, date) and print the bundle.

Usage examples:
  python scripts/generate_bundle.py --user alice
  python scripts/generate_bundle.py --user alice --date 2026-03-01 --deliver
  python scripts/generate_bundle.py --user alice --end-session --conversation notes.txt
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from primer.core.exceptions import PrimerError
from primer.core.logging_config import setup_logging
from primer.curation.orchestrator import CurationOrchestrator
from primer.llm.client import get_llm_client


async def _run(args: argparse.Namespace) -> int:
    orchestrator = CurationOrchestrator.from_db_path(Path(args.db) if args.db else None)
    date_id = args.date or datetime.now(timezone.utc).strftime("%Y-%m-%d")

    try:
        bundle = await orchestrator.get_or_generate(args.user, date_id)
        if args.deliver:
            delivered = orchestrator.mark_delivered(args.user, date_id)
            print(f"delivered: {delivered}", file=sys.stderr)
            bundle = orchestrator.get_bundle(args.user, date_id)

        print(json.dumps(bundle.model_dump(mode="json"), indent=2, ensure_ascii=False))

        if args.end_session:
            conversation = Path(args.conversation).read_text() if args.conversation else None
            completion = await orchestrator.end_session(args.user, conversation)
            if completion:
                print(json.dumps(completion.model_dump(mode="json"), indent=2, ensure_ascii=False))
            else:
                print("(arc continues)", file=sys.stderr)
    except PrimerError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        await get_llm_client().close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a Primer daily bundle.")
    parser.add_argument("--user", required=True)
    parser.add_argument("--date", default=None, help="Bundle date key, YYYY-MM-DD (default: today, UTC)")
    parser.add_argument("--db", default=None, help="SQLite path (defaults to PRIMER_DB_PATH)")
    parser.add_argument("--deliver", action="store_true", help="Mark the bundle delivered")
    parser.add_argument("--end-session", action="store_true", help="Run arc rollover afterwards")
    parser.add_argument("--conversation", default=None, help="Text file with the final conversation")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(log_to_file=False)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
