"""Layered configuration loader and CLI for the item bank engine."""
from __future__ import annotations

import argparse
import json
import os
import shutil
import sys
import tempfile
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional, Sequence

import tomli_w
from dotenv import dotenv_values
from pydantic import ValidationError

from itembank.config_schema import DEFAULT_CONFIG, Config, iter_field_docs

DEFAULT_ENV_PREFIX = "ITEMBANK"
DEFAULT_CONFIG_FILENAME = "config.toml"
DEFAULT_ENV_FILENAME = ".env"
BACKUP_DIRNAME = "backups"


@dataclass(frozen=True)
class ConfigValueOrigin:
    """Where a single configuration value came from."""

    layer: str
    source: str
    env_var: str | None = None

    def render(self) -> str:
        details = [part for part in (self.env_var, self.source) if part]
        if details:
            return f"{self.layer} ({', '.join(details)})"
        return self.layer


@dataclass
class ConfigMetadata:
    """Metadata attached to a loaded configuration."""

    config_path: Path
    env_path: Optional[Path]
    env_prefix: str
    provenance: Dict[str, ConfigValueOrigin] = field(default_factory=dict)
    load_order: tuple[str, ...] = ("defaults", "file", "env-file", "env")

    def describe_sources(self) -> list[str]:
        sources = [
            "defaults: built into itembank.config_schema",
            f"config file: {self.config_path}",
            f".env file: {self.env_path}" if self.env_path else ".env file: not found",
            f"environment prefix: {self.env_prefix}__*",
        ]
        return sources


class ConfigError(RuntimeError):
    """Raised when configuration loading or validation fails."""


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _default_paths() -> tuple[Path, Path]:
    root = _project_root()
    return root / DEFAULT_CONFIG_FILENAME, root / DEFAULT_ENV_FILENAME


def _is_secret(path: str) -> bool:
    lowered = path.lower()
    return any(token in lowered for token in ("password", "secret", "token"))


def _merge_layer(
    target: MutableMapping[str, Any],
    updates: Mapping[str, Any],
    provenance: Dict[str, ConfigValueOrigin],
    *,
    origin: ConfigValueOrigin,
    prefix: str = "",
) -> None:
    for key, value in updates.items():
        composed = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            existing = target.get(key)
            if not isinstance(existing, MutableMapping):
                existing = {}
                target[key] = existing
            _merge_layer(existing, value, provenance, origin=origin, prefix=composed)
        else:
            target[key] = value
            provenance[composed] = origin


def _coerce_text(value: str) -> Any:
    text = value.strip()
    if not text:
        return ""
    lowered = text.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        pass
    if text[0] in "[{" and text[-1] in "]}":
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    return text


def _env_key_to_path(raw_key: str, prefix: str) -> str:
    key_part = raw_key[len(prefix) + 2 :]
    segments = [segment.lower() for segment in key_part.split("__") if segment]
    if not segments:
        raise ConfigError(f"Environment override '{raw_key}' is missing key segments")
    return ".".join(segments)


def _assign_path(target: MutableMapping[str, Any], path: str, value: Any) -> None:
    segments = path.split(".")
    current = target
    for segment in segments[:-1]:
        next_value = current.get(segment)
        if not isinstance(next_value, MutableMapping):
            next_value = {}
            current[segment] = next_value
        current = next_value
    current[segments[-1]] = value


def _apply_env_layer(
    merged: MutableMapping[str, Any],
    values: Mapping[str, str],
    provenance: Dict[str, ConfigValueOrigin],
    *,
    prefix: str,
    layer: str,
    source: str,
) -> None:
    for key, value in values.items():
        if not key.startswith(prefix + "__"):
            continue
        path_key = _env_key_to_path(key, prefix)
        _assign_path(merged, path_key, _coerce_text(value))
        provenance[path_key] = ConfigValueOrigin(layer=layer, source=source, env_var=key)


def _load_toml(path: Path) -> Mapping[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError:
        return {}
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigError(f"Failed to parse {path}: {exc}") from exc


def _format_validation_error(
    error: ValidationError, provenance: Mapping[str, ConfigValueOrigin]
) -> ConfigError:
    messages: list[str] = []
    for record in error.errors():
        location = ".".join(str(part) for part in record.get("loc", ()))
        origin = provenance.get(location)
        origin_text = f" [{origin.render()}]" if origin else ""
        detail = record.get("msg", "invalid value")
        input_value = record.get("input")
        if input_value is not None and not _is_secret(location):
            detail += f" (received={input_value!r})"
        messages.append(f"{location or '<root>'}: {detail}{origin_text}")
    return ConfigError("Configuration validation failed:\n - " + "\n - ".join(messages))


def load_config(
    path: Path | None = None,
    *,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Merge defaults, the TOML file, the .env file and the environment."""

    config_path = path or _default_paths()[0]
    env_path = config_path.parent / DEFAULT_ENV_FILENAME
    runtime_env = os.environ if environ is None else environ

    merged: Dict[str, Any] = {}
    provenance: Dict[str, ConfigValueOrigin] = {}
    _merge_layer(
        merged,
        DEFAULT_CONFIG.model_dump(mode="python"),
        provenance,
        origin=ConfigValueOrigin(layer="defaults", source="DEFAULT_CONFIG"),
    )

    file_data = _load_toml(config_path)
    if file_data:
        _merge_layer(
            merged,
            file_data,
            provenance,
            origin=ConfigValueOrigin(layer="file", source=str(config_path)),
        )

    if env_path.exists():
        env_file_data = {
            key: value
            for key, value in dotenv_values(env_path).items()
            if value is not None
        }
        _apply_env_layer(
            merged,
            env_file_data,
            provenance,
            prefix=env_prefix,
            layer="env-file",
            source=str(env_path),
        )

    _apply_env_layer(
        merged, runtime_env, provenance, prefix=env_prefix, layer="env", source="process"
    )

    try:
        config = Config.model_validate(merged)
    except ValidationError as exc:
        raise _format_validation_error(exc, provenance) from exc
    config._metadata = ConfigMetadata(
        config_path=config_path,
        env_path=env_path if env_path.exists() else None,
        env_prefix=env_prefix,
        provenance=provenance,
    )
    return config


def _serialize_for_toml(value: Any) -> Any:
    if isinstance(value, Config):
        value = value.model_dump(mode="python")
    if isinstance(value, Mapping):
        # TOML has no null; unset optionals are simply omitted
        return {
            key: _serialize_for_toml(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, list):
        return [_serialize_for_toml(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    return value


def save_config(config: Config, path: Path | None = None) -> Path:
    """Write the configuration atomically, keeping a timestamped backup."""

    metadata: ConfigMetadata | None = getattr(config, "_metadata", None)
    target = path or (metadata.config_path if metadata else _default_paths()[0])
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = _serialize_for_toml(config)
    with tempfile.NamedTemporaryFile(
        prefix=".itembank-config-", dir=str(target.parent), delete=False
    ) as handle:
        tmp_path = Path(handle.name)
        tomli_w.dump(payload, handle)
    try:
        if target.exists():
            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
            backup_dir = target.parent / BACKUP_DIRNAME
            backup_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(target, backup_dir / f"{target.name}.{stamp}.bak")
        os.replace(tmp_path, target)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise ConfigError(f"Failed to persist configuration: {exc}") from exc
    return target


def _resolve_value(mapping: Mapping[str, Any], path: str) -> Any:
    current: Any = mapping
    for segment in path.split("."):
        if isinstance(current, Mapping) and segment in current:
            current = current[segment]
        else:
            raise ConfigError(f"Unknown configuration key: {path}")
    return current


def _safe_repr(value: Any) -> str:
    if isinstance(value, Path):
        return str(value)
    try:
        return json.dumps(value, ensure_ascii=False)
    except TypeError:
        return repr(value)


def explain(config: Config, key: str) -> str:
    """Describe a configuration value and the layer it came from."""

    metadata: ConfigMetadata | None = getattr(config, "_metadata", None)
    if metadata is None:
        raise ConfigError("Configuration metadata is unavailable")
    value = _resolve_value(config.model_dump(mode="python"), key)
    origin = metadata.provenance.get(key)
    rendered = "***masked***" if _is_secret(key) else _safe_repr(value)
    return f"{key} = {rendered}\nsource: {origin.render() if origin else 'unknown'}"


def _parse_assignment(raw: str) -> tuple[str, str]:
    key, separator, value = raw.partition("=")
    if not separator or not key.strip():
        raise ConfigError(f"Expected KEY=VALUE, got {raw!r}")
    return key.strip(), value


def set_value(config: Config, key: str, raw_value: str) -> Config:
    """Return a validated copy of ``config`` with ``key`` replaced."""

    metadata: ConfigMetadata | None = getattr(config, "_metadata", None)
    data = config.model_dump(mode="python")
    _resolve_value(data, key)
    _assign_path(data, key, _coerce_text(raw_value))
    try:
        updated = Config.model_validate(data)
    except ValidationError as exc:
        raise _format_validation_error(exc, metadata.provenance if metadata else {}) from exc
    updated._metadata = metadata
    return updated


def _format_schema_table() -> str:
    lines = ["| Field | Type | Default | Description |", "| --- | --- | --- | --- |"]
    for entry in iter_field_docs(DEFAULT_CONFIG):
        if entry["is_nested"]:
            continue
        default = "" if entry["default"] is None else _safe_repr(entry["default"])
        lines.append(
            f"| {entry['name']} | {entry['type']} | {default} | {entry['description']} |"
        )
    return "\n".join(lines)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Item bank configuration utilities",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", type=Path, help="Path to the TOML configuration file")
    parser.add_argument(
        "--env-prefix",
        default=DEFAULT_ENV_PREFIX,
        help="Environment variable prefix (e.g. ITEMBANK__DEDUP__MAX_TOKENS)",
    )
    actions = parser.add_mutually_exclusive_group(required=True)
    actions.add_argument("--validate", action="store_true", help="Validate the active configuration")
    actions.add_argument("--dump-defaults", action="store_true", help="Print built-in defaults as TOML")
    actions.add_argument("--print-schema", action="store_true", help="Print a Markdown table of all fields")
    actions.add_argument("--show-sources", action="store_true", help="Show configuration source precedence")
    actions.add_argument("--explain", metavar="KEY", help="Explain where a field value originates")
    actions.add_argument(
        "--set",
        metavar="KEY=VALUE",
        help="Update one field in the TOML file (a backup is kept)",
    )

    args = parser.parse_args(argv)

    try:
        if args.dump_defaults:
            sys.stdout.write(tomli_w.dumps(_serialize_for_toml(DEFAULT_CONFIG)))
            return 0
        if args.print_schema:
            print(_format_schema_table())
            return 0

        config = load_config(args.config, env_prefix=args.env_prefix)
        if args.validate:
            print("Configuration OK")
        elif args.show_sources:
            metadata: ConfigMetadata = config._metadata
            print("Active configuration sources:")
            for item in metadata.describe_sources():
                print(f"- {item}")
        elif args.explain:
            print(explain(config, args.explain))
        elif args.set:
            key, value = _parse_assignment(args.set)
            updated = set_value(config, key, value)
            target = save_config(updated)
            print(f"{key} updated in {target}")
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - module CLI entry point
    raise SystemExit(main())
