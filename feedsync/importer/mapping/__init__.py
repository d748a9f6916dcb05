"""Utilities for loading processor configurations and their mapping rules."""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from flask import current_app

from feedsync.importer.errors import ConfigurationError

DEFAULT_PROCESS_LIMIT = 50
EXPIRE_NEVER = -1

_RULE_KEYS = {"source", "target", "unique"}


class UpdateMode(str, enum.Enum):
    """How items that resolve to an existing record are handled."""

    SKIP = "skip"
    UPDATE = "update"


@dataclass(frozen=True)
class MappingRule:
    source: str
    target: str
    unique: bool = False
    extra: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        payload = dict(self.extra)
        payload.update({"source": self.source, "target": self.target, "unique": self.unique})
        return payload


@dataclass(frozen=True)
class ProcessorConfig:
    id: str
    entity_kind: str
    mappings: Sequence[MappingRule]
    update_existing: UpdateMode = UpdateMode.SKIP
    skip_hash_check: bool = False
    process_limit: int = DEFAULT_PROCESS_LIMIT
    authorize: bool = True
    expire_after: int = EXPIRE_NEVER
    checksum: str | None = None
    path: Path | None = None

    @property
    def unique_mappings(self) -> tuple[MappingRule, ...]:
        return tuple(rule for rule in self.mappings if rule.unique)

    def mapping_payload(self) -> list[dict[str, Any]]:
        """Serializable form of the mappings, used for fingerprints."""

        return [rule.as_dict() for rule in self.mappings]


def parse_processor_config(
    raw: Mapping[str, Any],
    *,
    path: Path | None = None,
    default_process_limit: int = DEFAULT_PROCESS_LIMIT,
) -> ProcessorConfig:
    """
    Validate a raw configuration mapping and build a ``ProcessorConfig``.
    """

    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Processor configuration must be a mapping, got {type(raw).__name__}.")

    try:
        processor_id = str(raw["id"]).strip()
        entity_kind = str(raw.get("entity_kind", "")).strip() or "article"
        mappings_payload = raw.get("mappings") or []
    except KeyError as exc:
        raise ConfigurationError(f"Missing required processor attribute: {exc}") from exc

    if not processor_id:
        raise ConfigurationError("Processor id cannot be empty.")

    try:
        update_existing = UpdateMode(str(raw.get("update_existing", UpdateMode.SKIP.value)).strip().lower())
    except ValueError as exc:
        raise ConfigurationError(
            f"Invalid update_existing value {raw.get('update_existing')!r}; expected 'skip' or 'update'."
        ) from exc

    process_limit = _coerce_int(raw.get("process_limit", default_process_limit), "process_limit")
    if process_limit < 0:
        raise ConfigurationError("process_limit cannot be negative (use 0 for unbounded).")
    expire_after = _coerce_int(raw.get("expire_after", EXPIRE_NEVER), "expire_after")
    if expire_after < EXPIRE_NEVER:
        raise ConfigurationError("expire_after must be -1 (never) or a number of seconds.")

    if not isinstance(mappings_payload, Sequence) or isinstance(mappings_payload, (str, bytes)):
        raise ConfigurationError("Processor mappings must be a list.")

    rules: list[MappingRule] = []
    for entry in mappings_payload:
        if not isinstance(entry, Mapping):
            raise ConfigurationError(f"Mapping definition must be a mapping, got {entry!r}")
        source = entry.get("source")
        target = entry.get("target")
        if not source:
            raise ConfigurationError(f"Mapping entry missing 'source': {entry!r}")
        if not target:
            raise ConfigurationError(f"Mapping entry missing 'target': {entry!r}")
        rules.append(
            MappingRule(
                source=str(source).strip(),
                target=str(target).strip(),
                unique=bool(entry.get("unique", False)),
                extra={key: value for key, value in entry.items() if key not in _RULE_KEYS},
            )
        )

    return ProcessorConfig(
        id=processor_id,
        entity_kind=entity_kind,
        mappings=tuple(rules),
        update_existing=update_existing,
        skip_hash_check=bool(raw.get("skip_hash_check", False)),
        process_limit=process_limit,
        authorize=bool(raw.get("authorize", True)),
        expire_after=expire_after,
        checksum=_compute_checksum(raw),
        path=path,
    )


def load_processor_config(path: str | Path, *, default_process_limit: int = DEFAULT_PROCESS_LIMIT) -> ProcessorConfig:
    """
    Load and validate a YAML processor configuration.
    """

    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Processor configuration not found at {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - YAML parser errors
        raise ConfigurationError(f"Failed to parse processor YAML at {path}: {exc}") from exc

    return parse_processor_config(raw, path=path, default_process_limit=default_process_limit)


def resolve_config_path(value: str | Path, app=None) -> Path:
    """
    Resolve a configuration path, treating relative names as entries of
    ``IMPORTER_CONFIG_DIR`` when that directory is configured.
    """

    candidate = Path(value)
    if candidate.is_absolute() or candidate.exists():
        return candidate
    config = (app or current_app).config
    config_dir = config.get("IMPORTER_CONFIG_DIR")
    if not config_dir:
        return candidate
    resolved = Path(config_dir) / candidate
    if not resolved.suffix:
        resolved = resolved.with_suffix(".yaml")
    return resolved


def _coerce_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid integer for {name}: {value!r}") from exc


def _compute_checksum(payload: Mapping[str, Any]) -> str:
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()
