"""
Extension points the processor invokes while importing items.

One ``ImporterExtensions`` instance is kept on the Flask app under
``app.extensions["importer"]["hooks"]``; processors receive it explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Mapping, MutableMapping

from flask import current_app

from feedsync.importer.targets import default_contributors

if TYPE_CHECKING:  # pragma: no cover
    from feedsync.importer.pipeline.source import FeedSource, MappingSource
    from feedsync.models import ImportedEntity

BeforeUpdateHook = Callable[["FeedSource", Mapping[str, Any], "int | None"], None]
PresaveHook = Callable[["FeedSource", "ImportedEntity", Mapping[str, Any]], None]
PolicyHook = Callable[["ImportedEntity"], None]
Validator = Callable[["ImportedEntity"], None]
AccessCheck = Callable[["FeedSource", "ImportedEntity", str], bool]


@dataclass
class ImporterExtensions:
    contributors: list = field(default_factory=default_contributors)
    before_update: list[BeforeUpdateHook] = field(default_factory=list)
    presave: list[PresaveHook] = field(default_factory=list)
    policy_hooks: MutableMapping[str, PolicyHook] = field(default_factory=dict)
    validators: list[Validator] = field(default_factory=list)
    access_check: AccessCheck | None = None
    sources: MutableMapping[str, "MappingSource"] = field(default_factory=dict)

    def policy_hook(self, processor_id: str) -> PolicyHook | None:
        return self.policy_hooks.get(f"feeds_import_{processor_id}")

    def register_policy_hook(self, processor_id: str, hook: PolicyHook) -> None:
        self.policy_hooks[f"feeds_import_{processor_id}"] = hook

    def register_source(self, source: "MappingSource") -> None:
        self.sources[source.name] = source


def get_importer_extensions(app=None) -> ImporterExtensions:
    """Return the app's extension registry, creating it on first use."""

    app = app or current_app
    state = app.extensions.setdefault("importer", {})
    extensions = state.get("hooks")
    if extensions is None:
        extensions = state["hooks"] = ImporterExtensions()
    return extensions
