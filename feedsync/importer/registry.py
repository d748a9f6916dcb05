"""
Target field registry.

Contributors describe the fields a processor may write to. They run in
registration order against one ordered mapping, so a later contributor can
replace or remove what an earlier one declared. The merged result is built
once per registry instance and reused for the rest of the run.
"""

from __future__ import annotations

import importlib
import logging
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, MutableMapping, Protocol, Union

if TYPE_CHECKING:  # pragma: no cover
    from feedsync.importer.mapping import MappingRule
    from feedsync.importer.pipeline.source import FeedSource
    from feedsync.importer.pipeline.storage import EntityStorage
    from feedsync.models import ImportedEntity

logger = logging.getLogger(__name__)

TargetCallback = Callable[["FeedSource", "ImportedEntity", str, Any, "MappingRule"], None]
UniqueLookup = Callable[["EntityStorage", "FeedSource", Any], Union[int, None]]
TargetMap = MutableMapping[str, "TargetDescriptor"]


@dataclass(frozen=True)
class TargetDescriptor:
    """
    Metadata describing a mapping target.

    ``callback`` is either a callable, a ``"module:function"`` path that is
    imported when the registry is built, or ``None`` for the default setter.
    """

    id: str
    name: str = ""
    description: str = ""
    callback: TargetCallback | str | None = None
    optional_unique: bool = False
    real_target: str | None = None
    unique_lookup: UniqueLookup | None = None

    @property
    def label(self) -> str:
        return self.name or self.id

    @property
    def field_name(self) -> str:
        return self.real_target or self.id


class TargetContributor(Protocol):
    def alter_targets(self, targets: TargetMap, entity_kind: str, context: Mapping[str, Any]) -> None:
        ...


class TargetRegistry:
    """Ordered list of contributors plus the memoized merge of their targets."""

    def __init__(self, contributors: Iterable[TargetContributor | Callable[..., None]] = ()) -> None:
        self._contributors = list(contributors)
        self._cache: dict[str, OrderedDict[str, TargetDescriptor]] = {}

    @property
    def contributors(self) -> tuple:
        return tuple(self._contributors)

    def register(self, contributor: TargetContributor | Callable[..., None]) -> None:
        self._contributors.append(contributor)
        self._cache.clear()

    def build_targets(
        self,
        entity_kind: str,
        context: Mapping[str, Any] | None = None,
    ) -> Mapping[str, TargetDescriptor]:
        cached = self._cache.get(entity_kind)
        if cached is not None:
            return cached

        targets: OrderedDict[str, TargetDescriptor] = OrderedDict()
        for contributor in self._contributors:
            alter = getattr(contributor, "alter_targets", contributor)
            alter(targets, entity_kind, context or {})

        resolved: OrderedDict[str, TargetDescriptor] = OrderedDict()
        for key, descriptor in targets.items():
            if descriptor.id != key:
                descriptor = replace(descriptor, id=key)
            if isinstance(descriptor.callback, str):
                descriptor = replace(descriptor, callback=_resolve_callback(key, descriptor.callback))
            resolved[key] = descriptor

        self._cache[entity_kind] = resolved
        return resolved


def _resolve_callback(target: str, path: str) -> TargetCallback | None:
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        logger.warning("Target %s callback %r is not a 'module:function' path; using default setter.", target, path)
        return None
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        logger.warning("Target %s callback module %s could not be imported; using default setter.", target, module_name)
        return None
    callback = getattr(module, attribute, None)
    if not callable(callback):
        logger.warning("Target %s callback %s is not callable; using default setter.", target, path)
        return None
    return callback
