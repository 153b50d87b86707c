"""Project-level versioning and interpreter requirements."""

from __future__ import annotations

from pathlib import Path
from typing import Final, NamedTuple, Tuple

MIN_PYTHON_VERSION: Final[Tuple[int, int]] = (3, 11)
PYTHON_REQUIRES_SPECIFIER: Final[str] = ">=" + ".".join(
    str(part) for part in MIN_PYTHON_VERSION
)


class VersionInfo(NamedTuple):
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def _read_version(path: Path) -> str:
    version = path.read_text(encoding="utf-8").strip()
    parts = version.split(".")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        raise ValueError(f"VERSION must look like MAJOR.MINOR.PATCH, got {version!r}")
    return version


_VERSION_FILE = Path(__file__).resolve().parent.parent / "VERSION"
PROJECT_VERSION: Final[str] = _read_version(_VERSION_FILE)
VERSION_INFO: Final[VersionInfo] = VersionInfo(
    *(int(part) for part in PROJECT_VERSION.split("."))
)
__version__: Final[str] = PROJECT_VERSION

__all__ = [
    "MIN_PYTHON_VERSION",
    "PYTHON_REQUIRES_SPECIFIER",
    "PROJECT_VERSION",
    "VERSION_INFO",
    "VersionInfo",
    "__version__",
]
