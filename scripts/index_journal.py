#!/usr/bin/env python3
"""Re-embed journal entries into the similarity index.

Run after importing decisions from another device, or after changing
COACH_EMBED_MODEL, so that retrieval sees every entry:

    python scripts/index_journal.py
    python scripts/index_journal.py --id 3f2c... --id 9ab1...
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from decision_coach.log_setup import setup_logging
from decision_coach.runtime import create_runtime


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Rebuild the decision similarity index")
    parser.add_argument("--id", dest="ids", action="append", help="Only re-index these decision ids")
    parser.add_argument("--skip-archived", action="store_true", help="Leave archived decisions out")
    args = parser.parse_args(argv)

    setup_logging()
    runtime = create_runtime()
    if args.ids:
        decisions = runtime.journal.get_decisions(args.ids)
        missing = sorted(set(args.ids) - {decision.id for decision in decisions})
        for decision_id in missing:
            print(f"✗ No decision with id {decision_id}", file=sys.stderr)
    else:
        decisions = runtime.journal.list_decisions(include_archived=not args.skip_archived)

    if not decisions:
        print("Nothing to index")
        return 0
    count = runtime.decision_index.index_decisions(decisions)
    total = runtime.vector_store.count(runtime.decision_index.namespace)
    print(f"✓ Indexed {count} decisions ({total} in the index)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
