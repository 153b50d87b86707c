"""Operational healthcheck for the fingerprint store."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from config.settings import validate_config
from itembank.config_manager import ConfigError
from src import setup_logging
from src.storage import initialize_database


@dataclass
class CheckResult:
    """Outcome of a single health check."""

    name: str
    status: str
    details: Dict[str, Any]

    def prefix(self) -> str:
        if self.status == "ok":
            return "✅"
        if self.status == "warn":
            return "⚠️"
        return "❌"

    def summary(self) -> str:
        message = self.details.get("message")
        if message:
            return message
        if self.name == "configuration":
            return "Configuration passed cross-field checks"
        if self.name == "database":
            return f"Database reachable via {self.details.get('engine', 'unknown')}"
        if self.name == "duplicate_groups":
            return (
                f"{self.details.get('groups')} groups of identical items "
                f"(threshold {self.details.get('threshold')})"
            )
        return self.name.replace("_", " ").title()


def perform_healthcheck(
    *, store=None, config=None, max_duplicate_groups: Optional[int] = None
) -> Dict[str, Any]:
    checks: list[CheckResult] = []

    try:
        validate_config(config)
    except ConfigError as exc:
        checks.append(
            CheckResult(
                name="configuration",
                status="fail",
                details={"message": f"Invalid configuration: {exc}"},
            )
        )
        return {"healthy": False, "checks": checks}
    checks.append(CheckResult(name="configuration", status="ok", details={}))

    store = store or initialize_database()
    status = store.health_status()

    if status.get("status") != "healthy":
        checks.append(
            CheckResult(
                name="database",
                status="fail",
                details={"message": f"Database query failed: {status.get('error')}"},
            )
        )
        return {"healthy": False, "checks": checks}

    checks.append(
        CheckResult(
            name="database",
            status="ok",
            details={"engine": status.get("database_type", "unknown")},
        )
    )

    groups = len(store.duplicate_groups())
    group_status = "ok"
    if max_duplicate_groups is not None and groups > max_duplicate_groups:
        group_status = "warn"
    checks.append(
        CheckResult(
            name="duplicate_groups",
            status=group_status,
            details={"groups": groups, "threshold": max_duplicate_groups},
        )
    )

    return {
        "healthy": all(check.status != "fail" for check in checks),
        "checks": checks,
        "summary": {
            "fingerprints": status.get("fingerprints"),
            "tokenized_fingerprints": status.get("tokenized_fingerprints"),
            "last_update": status.get("last_update"),
            "duplicate_groups": groups,
        },
    }


def render_checks(checks: Iterable[CheckResult]) -> None:
    for check in checks:
        print(f"{check.prefix()} {check.name}: {check.summary()}")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Fingerprint store healthcheck")
    parser.add_argument(
        "--max-duplicate-groups",
        type=int,
        default=None,
        help="warn when more groups of identical items exist",
    )
    args = parser.parse_args(argv)

    setup_logging()
    result = perform_healthcheck(max_duplicate_groups=args.max_duplicate_groups)
    render_checks(result["checks"])
    return 0 if result["healthy"] else 1


if __name__ == "__main__":
    sys.exit(main())
