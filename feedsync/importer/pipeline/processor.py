"""
Feed item processor: resolves, fingerprints, maps and saves parsed items.

Each item is handled in isolation and reduced to an ``ItemResult``; the
batch loop only tallies results, so one bad item never halts a batch.
Configuration errors and fatal storage errors still propagate.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from feedsync.importer.errors import AccessError, ConfigurationError, ImporterError, StorageError, ValidationError
from feedsync.importer.extensions import ImporterExtensions
from feedsync.importer.mapping import MappingRule, ProcessorConfig, UpdateMode
from feedsync.importer.metrics import record_item_outcome
from feedsync.importer.registry import TargetDescriptor, TargetRegistry
from feedsync.models import ImportedEntity

from .executor import MappingExecutor
from .fingerprint import compute_fingerprint
from .idempotency import resolve_existing_entity_id
from .source import FeedSource, ParserResult, SourceAccessor
from .state import RunState
from .storage import EntityStorage

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 255


class ItemStatus(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED_EXISTING = "skipped_existing"
    UNCHANGED = "unchanged"
    SKIPPED_BY_HOOK = "skipped_by_hook"
    FAILED = "failed"


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    ACCESS = "access"
    STORAGE = "storage"
    OTHER = "other"


@dataclass(frozen=True)
class ItemResult:
    """Outcome of processing a single parsed item."""

    status: ItemStatus
    entity_id: int | None = None
    error_kind: ErrorKind | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not ItemStatus.FAILED


@dataclass(frozen=True)
class ProcessMessage:
    status: str
    text: str


def _error_kind(exc: ImporterError) -> ErrorKind:
    if isinstance(exc, ValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, AccessError):
        return ErrorKind.ACCESS
    if isinstance(exc, StorageError):
        return ErrorKind.STORAGE
    return ErrorKind.OTHER


def _dump(value: Any) -> str:
    return json.dumps(value, sort_keys=True, indent=2, default=str)


class FeedsProcessor:
    """Creates and updates ``ImportedEntity`` records from a parser result."""

    def __init__(
        self,
        config: ProcessorConfig,
        storage: EntityStorage,
        registry: TargetRegistry | None = None,
        extensions: ImporterExtensions | None = None,
        *,
        accessor: SourceAccessor | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self.extensions = extensions or ImporterExtensions()
        self.registry = registry or TargetRegistry(self.extensions.contributors)
        self.context = dict(context or {})
        self._executor: MappingExecutor | None = None
        self._accessor = accessor

    @property
    def entity_kind(self) -> str:
        return self.config.entity_kind

    @property
    def mappings(self) -> Sequence[MappingRule]:
        return self.config.mappings

    @property
    def targets(self) -> Mapping[str, TargetDescriptor]:
        return self.registry.build_targets(self.entity_kind, self.context)

    @property
    def executor(self) -> MappingExecutor:
        if self._executor is None:
            self._executor = MappingExecutor(self.targets, self.extensions.sources, self._accessor)
        return self._executor

    def unique_targets(self, source: FeedSource, result: ParserResult) -> dict[str, Any]:
        """Values of the unique-flagged mappings for the current item."""

        values: dict[str, Any] = {}
        for rule in self.mappings:
            if rule.unique:
                values[rule.target] = self.executor.source_value(source, result, rule.source)
        return values

    def existing_entity_id(self, source: FeedSource, result: ParserResult) -> int | None:
        return resolve_existing_entity_id(
            self.storage,
            source,
            result,
            self.mappings,
            self.targets,
            self.executor.source_value,
        )

    def get_hash(self, item: Any) -> str:
        return compute_fingerprint(item, self.config.mapping_payload())

    def item_count(self, source: FeedSource) -> int:
        return self.storage.count_linkage(source)

    def _check_configuration(self) -> None:
        targets = self.targets
        unknown = [rule.target for rule in self.mappings if rule.target not in targets]
        if unknown:
            raise ConfigurationError(
                f"Processor {self.config.id} maps to unknown targets: {', '.join(sorted(set(unknown)))}."
            )
        for rule in self.mappings:
            if rule.unique and not targets[rule.target].optional_unique:
                raise ConfigurationError(
                    f"Processor {self.config.id} marks {rule.target} unique but it cannot be used as a unique key."
                )

    def process(self, source: FeedSource, result: ParserResult, state: RunState) -> list[ProcessMessage]:
        """
        Process up to ``process_limit`` items from ``result``.

        ``state.total`` is fixed on the first call of a cycle; the summary is
        only produced once every item of the cycle has been consumed.
        """

        self._check_configuration()
        if not state.total:
            state.total = state.pointer + len(result)

        limit = self.config.process_limit
        processed = 0
        while result.has_next() and (limit == 0 or processed < limit):
            item = result.shift_item()
            outcome = self.process_item(source, result, item)
            self._tally(state, outcome)
            processed += 1

        state.pointer += processed
        state.update_progress(state.total, state.pointer)
        if state.is_complete:
            return self.report(state)
        return []

    def process_item(self, source: FeedSource, result: ParserResult, item: Mapping[str, Any]) -> ItemResult:
        record: ImportedEntity | None = None
        snapshot: dict[str, Any] | None = None
        try:
            entity_id = self.existing_entity_id(source, result)
            for hook in self.extensions.before_update:
                hook(source, item, entity_id)

            if entity_id and self.config.update_existing is UpdateMode.SKIP:
                return ItemResult(ItemStatus.SKIPPED_EXISTING, entity_id=entity_id)

            fingerprint = self.get_hash(item)
            if entity_id and not self.config.skip_hash_check and fingerprint == self.storage.get_hash(entity_id):
                return ItemResult(ItemStatus.UNCHANGED, entity_id=entity_id)

            if entity_id:
                record = self.storage.load_entity(source, entity_id)
                if record is None:
                    logger.info("Removing orphaned linkage for %s %s", self.entity_kind, entity_id)
                    self.storage.delete_entities({entity_id})
            if record is None:
                record = self.storage.new_entity(source)
            is_new = record.is_new
            self._new_item_info(record, source, fingerprint)

            self.executor.apply(source, result, record, self.mappings)
            self.validate(record)

            for hook in self.extensions.presave:
                hook(source, record, item)
            policy_hook = self.extensions.policy_hook(self.config.id)
            if policy_hook is not None:
                policy_hook(record)
            if record.feed_item is not None and record.feed_item.skip:
                self.storage.discard(record)
                return ItemResult(ItemStatus.SKIPPED_BY_HOOK, entity_id=record.id)

            snapshot = record.as_dict()
            self.check_access(source, record)
            self.storage.save_entity(record)
        except ImporterError as exc:
            if isinstance(exc, ConfigurationError) or (isinstance(exc, StorageError) and exc.fatal):
                self.storage.discard(record)
                raise
            if snapshot is None and record is not None:
                snapshot = record.as_dict()
            self.storage.discard(record)
            logger.error(
                "%s\n\nOriginal item\n%s\n\nEntity\n%s",
                exc,
                _dump(item),
                _dump(snapshot),
                extra={"importer_processor": self.config.id, "importer_error_kind": _error_kind(exc).value},
            )
            return ItemResult(ItemStatus.FAILED, error_kind=_error_kind(exc), detail=str(exc))

        status = ItemStatus.CREATED if is_new else ItemStatus.UPDATED
        return ItemResult(status, entity_id=record.id)

    def _new_item_info(self, record: ImportedEntity, source: FeedSource, fingerprint: str) -> None:
        link = record.feed_item
        link.processor_id = source.processor_id
        link.origin_id = source.origin_id
        link.url = None
        link.guid = None
        link.skip = False
        link.stamp(fingerprint=fingerprint, imported_at=datetime.now(timezone.utc))

    def validate(self, record: ImportedEntity) -> None:
        title = record.get_field("title")
        if title and len(title) > TITLE_MAX_LENGTH:
            raise ValidationError(
                f"Title exceeds {TITLE_MAX_LENGTH} characters ({len(title)}).",
                field="title",
            )
        for validator in self.extensions.validators:
            validator(record)

    def check_access(self, source: FeedSource, record: ImportedEntity) -> None:
        if not self.config.authorize or self.extensions.access_check is None:
            return
        operation = "create" if record.is_new else "update"
        if not self.extensions.access_check(source, record, operation):
            raise AccessError(
                f"Not authorized to {operation} {self.entity_kind} records for processor {self.config.id}."
            )

    def _tally(self, state: RunState, outcome: ItemResult) -> None:
        status = outcome.status
        if status is ItemStatus.CREATED:
            state.created += 1
        elif status is ItemStatus.UPDATED:
            state.updated += 1
        elif status is ItemStatus.FAILED:
            state.failed += 1
        elif status is ItemStatus.UNCHANGED:
            state.unchanged += 1
        else:
            state.skipped += 1
        record_item_outcome(self.config.id, status.value)

    def _label(self, count: int) -> str:
        return self.entity_kind if count == 1 else f"{self.entity_kind}s"

    def report(self, state: RunState) -> list[ProcessMessage]:
        messages: list[ProcessMessage] = []
        if state.created:
            messages.append(ProcessMessage("status", f"Created {state.created} {self._label(state.created)}."))
        if state.updated:
            messages.append(ProcessMessage("status", f"Updated {state.updated} {self._label(state.updated)}."))
        if state.failed:
            messages.append(
                ProcessMessage("error", f"Failed importing {state.failed} {self._label(state.failed)}.")
            )
        if not messages:
            messages.append(ProcessMessage("status", f"There are no new {self._label(0)}."))
        for message in messages:
            log = logger.error if message.status == "error" else logger.info
            log("%s: %s", self.config.id, message.text)
        return messages
