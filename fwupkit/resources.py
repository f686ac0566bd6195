"""Lists of file resources held in an archive or used by a task."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from fwupkit.util import FwupError


@dataclass
class ResourceEntry:
    """A file-resource section and whether it has been handled yet."""

    name: str
    resource: Mapping[str, Any]
    processed: bool = False


def _file_resources(config: Mapping[str, Any]) -> Mapping[str, Mapping[str, Any]]:
    return config.get("file-resource") or {}


def get_all(config: Mapping[str, Any]) -> list[ResourceEntry]:
    """Return an entry for every file-resource in config, last defined first."""
    entries = [
        ResourceEntry(name, resource)
        for name, resource in _file_resources(config).items()
    ]
    entries.reverse()
    return entries


def get_from_task(config: Mapping[str, Any], task: Mapping[str, Any]) -> list[ResourceEntry]:
    """Return an entry for every resource a task uses, last used first.

    Raises FwupError if the task uses a resource that config does not describe.
    """
    resources = _file_resources(config)
    on_resource: Iterable[str] = task.get("on-resource") or ()
    entries: list[ResourceEntry] = []
    for name in on_resource:
        resource = resources.get(name)
        if resource is None:
            raise FwupError(
                f"Resource '{name}' used, but metadata is missing. Archive is corrupt."
            )
        entries.append(ResourceEntry(name, resource))
    entries.reverse()
    return entries


def find_by_name(entries: Iterable[ResourceEntry], name: str) -> ResourceEntry | None:
    """Return the first entry with the given name, or None."""
    return next((entry for entry in entries if entry.name == name), None)