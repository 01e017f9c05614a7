"""
Remote/local list reconciliation.

The server is authoritative for every id it returns. Items that exist only
locally (created offline, or not yet acknowledged) survive verbatim after the
remote items, so nothing written on this device is lost before it is pushed.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable
from typing import Any, TypeVar

T = TypeVar("T")


def entity_key(item: Any) -> str:
    """Id of a record or of its persisted dict form."""
    if isinstance(item, dict):
        return str(item["id"])
    return str(item.id)


def merge(
    remote: Iterable[T] | None,
    local: Iterable[T] | None,
    key: Callable[[T], Hashable] = entity_key,
) -> list[T]:
    """
    Merge a remote list with a local list of the same entity kind.

    Output order is every remote item in remote order, followed by the local
    items whose id is absent from remote, in local order. Remote values win
    for shared ids; no field-level merging happens.

    Args:
        remote: Authoritative server list (None is treated as empty)
        local: Locally persisted list (None is treated as empty)
        key: Id extractor

    Returns:
        The merged list with unique ids
    """
    merged: list[T] = []
    seen: set[Hashable] = set()

    for item in remote or []:
        item_key = key(item)
        if item_key in seen:
            continue
        seen.add(item_key)
        merged.append(item)

    for item in local or []:
        item_key = key(item)
        if item_key in seen:
            continue
        seen.add(item_key)
        merged.append(item)

    return merged


def local_only(remote: Iterable[T], local: Iterable[T], key: Callable[[T], Hashable] = entity_key) -> list[T]:
    """Local items whose id the server does not know."""
    remote_keys = {key(item) for item in remote}
    return [item for item in local if key(item) not in remote_keys]
