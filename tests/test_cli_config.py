from __future__ import annotations

import subprocess
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]


def _run_cli(tmp_path: Path, *args: str) -> subprocess.CompletedProcess[str]:
    config_file = tmp_path / "config.toml"
    if not config_file.exists():
        config_file.write_text("[dedup]\nmax_tokens = 800\n", encoding="utf-8")
    cmd = [
        sys.executable,
        "-m",
        "itembank.config_manager",
        "--config",
        str(config_file),
        *args,
    ]
    return subprocess.run(
        cmd, check=False, capture_output=True, text=True, cwd=str(ROOT_DIR)
    )


def test_validate_success(tmp_path: Path) -> None:
    result = _run_cli(tmp_path, "--validate")
    assert result.returncode == 0
    assert "Configuration OK" in result.stdout


def test_explain_reports_source(tmp_path: Path) -> None:
    env_path = tmp_path / ".env"
    env_path.write_text("ITEMBANK__DEDUP__MAX_TOKENS=900\n", encoding="utf-8")
    result = _run_cli(tmp_path, "--explain", "dedup.max_tokens")
    assert result.returncode == 0
    assert "dedup.max_tokens = 900" in result.stdout
    assert "ITEMBANK__DEDUP__MAX_TOKENS" in result.stdout


def test_set_updates_file_and_creates_backup(tmp_path: Path) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("[dedup]\nsimilarity_threshold = 0.8\n", encoding="utf-8")
    result = _run_cli(tmp_path, "--set", "dedup.similarity_threshold=0.75")
    assert result.returncode == 0
    assert "dedup.similarity_threshold" in result.stdout
    data = config_file.read_text(encoding="utf-8")
    assert "similarity_threshold = 0.75" in data
    backups = list((tmp_path / "backups").glob("config.toml.*.bak"))
    assert backups, "CLI updates must generate backups"


def test_set_rejects_invalid_value(tmp_path: Path) -> None:
    result = _run_cli(tmp_path, "--set", "dedup.similarity_threshold=3")
    assert result.returncode == 1
    assert "dedup.similarity_threshold" in result.stderr


def test_validate_failure_reports_error(tmp_path: Path) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("[dedup]\nngram_size = 'oops'\n", encoding="utf-8")
    result = _run_cli(tmp_path, "--validate")
    assert result.returncode == 1
    assert "dedup.ngram_size" in result.stderr
    assert "file" in result.stderr
