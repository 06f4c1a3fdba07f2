"""Page boundary bookkeeping for cursor-based navigation.

Entry *i* holds the first and last positions of page *i* as it was last
shown. Moving forward anchors on the current page's last key; moving back
re-queries from the target page's first key. Pages can only be reached by
stepping forward from the highest visited one, so there is no way to
address a page that was never seen.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from jobdesk.core.predicates import CursorKey, Ordering, Record


@dataclass(frozen=True)
class LedgerEntry:
    first_key: CursorKey
    last_key: CursorKey

    @classmethod
    def from_page(cls, records: Sequence[Record], ordering: Ordering) -> LedgerEntry:
        if not records:
            raise ValueError("Cannot record boundaries of an empty page")
        return cls(
            first_key=CursorKey.from_record(records[0], ordering),
            last_key=CursorKey.from_record(records[-1], ordering),
        )


@dataclass(frozen=True)
class CursorLedger:
    entries: tuple[LedgerEntry, ...] = field(default=())

    def __len__(self) -> int:
        return len(self.entries)

    def push(self, page_index: int, entry: LedgerEntry) -> CursorLedger:
        if page_index != len(self.entries):
            raise ValueError(f"Expected entry for page {len(self.entries)}, got page {page_index}")
        return CursorLedger((*self.entries, entry))

    def pop(self) -> CursorLedger:
        if not self.entries:
            raise IndexError("pop from an empty ledger")
        return CursorLedger(self.entries[:-1])

    def get(self, page_index: int) -> LedgerEntry | None:
        if 0 <= page_index < len(self.entries):
            return self.entries[page_index]
        return None

    def restate(self, entry: LedgerEntry) -> CursorLedger:
        if not self.entries:
            raise IndexError("restate on an empty ledger")
        return CursorLedger((*self.entries[:-1], entry))

    def truncate(self, length: int) -> CursorLedger:
        return CursorLedger(self.entries[: max(length, 0)])

    def reset(self) -> CursorLedger:
        return CursorLedger()
