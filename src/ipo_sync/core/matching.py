"""Match incoming IPO rows against stored rows and secondary-source entries."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

from .models import CrossReference, IpoRecord
from .normalize import display_name, normalize_name

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Match:
    key: str
    persisted: Optional[IpoRecord]
    cross_reference: Optional[CrossReference]


class MatchResolver:
    """Exact lookups on the normalized name key, then on the source id.

    Both maps are built once per batch; there is no approximate matching, so two
    spellings that normalize differently stay distinct rows unless they share an id.
    """

    def __init__(
        self,
        persisted: Iterable[IpoRecord],
        cross_references: Mapping[str, CrossReference] | None = None,
    ) -> None:
        self._persisted: Dict[str, IpoRecord] = {}
        self._by_id: Dict[int, IpoRecord] = {}
        for record in persisted:
            self._by_id[record.id] = record
            key = normalize_name(record.name)
            if not key:
                continue
            existing = self._persisted.get(key)
            if existing is not None and existing.id != record.id:
                LOGGER.error(
                    "Stored IPOs %s and %s share the matching key %r; keeping %s",
                    existing.id, record.id, key, existing.id,
                )
                continue
            self._persisted[key] = record
        self._cross_references: Dict[str, CrossReference] = dict(cross_references or {})

    def __len__(self) -> int:
        return len(self._by_id)

    def remember(self, record: IpoRecord) -> None:
        """Write a row inserted or updated in this batch back into the snapshot."""
        previous = self._by_id.get(record.id)
        if previous is not None:
            old_key = normalize_name(previous.name)
            if self._persisted.get(old_key) is previous:
                del self._persisted[old_key]
        self._by_id[record.id] = record
        key = normalize_name(record.name)
        if key:
            self._persisted[key] = record

    def resolve(self, raw_name: str, ipo_id: Optional[int] = None) -> Match:
        """Stored row by name key; falls back to the id when the name finds nothing."""
        key = normalize_name(display_name(raw_name))
        persisted = self._persisted.get(key) if key else None
        if persisted is None and ipo_id is not None:
            persisted = self._by_id.get(ipo_id)
        return Match(
            key=key,
            persisted=persisted,
            cross_reference=self._cross_references.get(key) if key else None,
        )


def merge_cross_references(*maps: Mapping[str, CrossReference]) -> Dict[str, CrossReference]:
    """Later maps win on key collisions, matching the mainboard-then-sme fetch order."""
    merged: Dict[str, CrossReference] = {}
    for mapping in maps:
        merged.update(mapping)
    return merged
