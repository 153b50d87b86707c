#!/usr/bin/env python
"""Fingerprint existing items from a JSON Lines export.

Each line holds one item: ``{"item_id": ..., "stem": ..., "options": [...]}``
or ``{"item_id": ..., "text": ...}``. Blank lines are ignored.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from pydantic import ValidationError

from config.version import PROJECT_VERSION
from src import setup_logging
from src.contracts.dedup import ItemContent
from src.dedup.service import DuplicateDetectionService
from src.utils.logger import log_function_calls


def iter_items(path: Path) -> Iterator[Dict[str, Any]]:
    with path.open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as exc:
                print(f"line {line_number}: invalid JSON ({exc.msg})", file=sys.stderr)


@log_function_calls()
def backfill(
    path: Path, service: Optional[DuplicateDetectionService] = None
) -> Dict[str, int]:
    service = service or DuplicateDetectionService()
    stats = {"stored": 0, "failed": 0, "invalid": 0}
    for raw in iter_items(path):
        if "text" in raw and "stem" not in raw:
            raw = {"item_id": raw.get("item_id"), "stem": raw.get("text") or ""}
        try:
            item = ItemContent.model_validate(raw)
        except ValidationError:
            stats["invalid"] += 1
            continue
        if service.fingerprint_item(item.item_id, item.combined_text()) is None:
            stats["failed"] += 1
        else:
            stats["stored"] += 1
    return stats


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("items", type=Path, help="JSON Lines file with item texts")
    args = parser.parse_args(argv)

    log = setup_logging()
    log.log_system_startup(PROJECT_VERSION, {"items_file": args.items})
    try:
        stats = backfill(args.items)
    except OSError as exc:
        log.log_error_with_context(exc, {"items_file": str(args.items)})
        return 1
    print(
        f"Fingerprinted {stats['stored']} items "
        f"({stats['failed']} failed, {stats['invalid']} invalid)."
    )
    return 1 if stats["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
