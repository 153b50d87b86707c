#!/usr/bin/env python
"""Remove fingerprints of items that no longer exist.

The list of live item ids comes from a text file with one id per line,
typically exported from the authoring database.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, Optional, Set

from config.version import PROJECT_VERSION
from src import setup_logging
from src.dedup.service import DuplicateDetectionService
from src.storage.database import FingerprintStore
from src.storage.directory import StaticItemDirectory
from src.utils.logger import log_function_calls


def read_item_ids(path: Path) -> Set[str]:
    with path.open("r", encoding="utf-8") as handle:
        return {line.strip() for line in handle if line.strip()}


@log_function_calls()
def cleanup(
    live_ids_path: Path, store: Optional[FingerprintStore] = None
) -> Dict[str, int]:
    directory = StaticItemDirectory(read_item_ids(live_ids_path))
    store = store or FingerprintStore(item_directory=directory)
    store.item_directory = directory
    return DuplicateDetectionService(store=store).cleanup_orphans()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("live_ids", type=Path, help="file with one live item id per line")
    args = parser.parse_args(argv)

    log = setup_logging()
    log.log_system_startup(PROJECT_VERSION, {"live_ids_file": args.live_ids})
    try:
        summary = cleanup(args.live_ids)
    except OSError as exc:
        log.log_error_with_context(exc, {"live_ids_file": str(args.live_ids)})
        return 1
    if summary.get("skipped"):
        print("Cleanup skipped: another run is in progress.")
        return 0
    if summary.get("failed"):
        print("Cleanup failed, see logs.", file=sys.stderr)
        return 1
    print(f"Checked {summary['checked']} fingerprints, removed {summary['deleted']}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
