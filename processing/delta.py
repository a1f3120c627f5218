"""
Snapshot diffing shared by the pilot, controller and airport families.

Items are plain JSON-ready dicts (the "short" views) so that value equality
is the same equality a subscriber applying the patch would observe.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

logger = logging.getLogger(__name__)


class DuplicateIdentityError(ValueError):
    """Two entities in one collection share an identity."""


@dataclass
class Delta:
    added: List[Dict[str, Any]] = field(default_factory=list)
    updated: List[Dict[str, Any]] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.deleted)

    def to_dict(self) -> dict:
        return {"added": self.added, "updated": self.updated, "deleted": self.deleted}


def index_by(items: Iterable[Dict[str, Any]], key: str) -> Dict[str, Dict[str, Any]]:
    """Index items by identity, rejecting duplicates."""
    index: Dict[str, Dict[str, Any]] = {}
    for item in items:
        identity = item[key]
        if identity in index:
            raise DuplicateIdentityError(f"Duplicate identity {key}={identity!r}")
        index[identity] = item
    return index


def shallow_diff(previous: Dict[str, Any], current: Dict[str, Any], key: str) -> Dict[str, Any]:
    """
    Patch turning `previous` into `current`.

    Top-level fields are compared with ==, which is deep for nested lists and
    dicts. The identity field is always present; a field dropped from
    `current` is patched to None.
    """
    patch = {key: current[key]}
    for name, value in current.items():
        if name == key:
            continue
        if name not in previous or previous[name] != value:
            patch[name] = value
    for name in previous:
        if name not in current:
            patch[name] = None
    return patch


def compute_delta(
    previous: Iterable[Dict[str, Any]],
    current: Iterable[Dict[str, Any]],
    key: str,
) -> Delta:
    """
    Diff two snapshots of one entity family.

    Args:
        previous: Items published last cycle
        current: Items of this cycle
        key: Name of the identity field

    Returns:
        Delta with full added items, minimal patches for changed items and
        the identities that disappeared.
    """
    previous_index = index_by(previous, key)
    current_index = index_by(current, key)

    delta = Delta()
    for identity, item in current_index.items():
        cached = previous_index.get(identity)
        if cached is None:
            delta.added.append(item)
            continue

        patch = shallow_diff(cached, item, key)
        if len(patch) > 1:
            delta.updated.append(patch)

    delta.deleted = [identity for identity in previous_index if identity not in current_index]

    logger.debug(
        f"Delta on {key}: +{len(delta.added)} ~{len(delta.updated)} -{len(delta.deleted)}"
    )
    return delta
