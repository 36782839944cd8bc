from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Iterable, Iterator, List, Tuple

from .buffer import PixelBuffer
from .filters import FilterKind, apply_filter, blend


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class FilterStackEntry:
    kind: FilterKind
    amount: float = 100
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", FilterKind(self.kind))
        try:
            amount = float(self.amount)
        except (TypeError, ValueError):
            raise ValueError("amount must be a number") from None
        object.__setattr__(self, "amount", min(100.0, max(0.0, amount)))

    def to_dict(self) -> dict:
        return {"id": self.id, "kind": self.kind.value, "amount": self.amount}


def apply_filter_stack(buffer: PixelBuffer, entries: Iterable[FilterStackEntry]) -> PixelBuffer:
    """Apply each enabled entry in order, blending by its amount.

    The blended output of one entry is the input of the next, so reordering
    the stack generally changes the result.
    """

    current = buffer.copy()
    for entry in entries:
        if entry.amount <= 0:
            continue
        filtered = apply_filter(current, entry.kind)
        current = blend(current, filtered, entry.amount / 100.0)
    return current


class FilterStack:
    """Ordered, mutable list of filter entries."""

    def __init__(self, entries: Iterable[FilterStackEntry] = ()) -> None:
        self._entries: List[FilterStackEntry] = list(entries)

    def __iter__(self) -> Iterator[FilterStackEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[FilterStackEntry, ...]:
        return tuple(self._entries)

    def _index(self, entry_id: str) -> int:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return index
        raise KeyError(entry_id)

    def get(self, entry_id: str) -> FilterStackEntry:
        return self._entries[self._index(entry_id)]

    def add(self, kind: FilterKind | str, amount: float = 100) -> FilterStackEntry:
        entry = FilterStackEntry(kind=FilterKind(kind), amount=amount)
        self._entries.append(entry)
        return entry

    def remove(self, entry_id: str) -> None:
        del self._entries[self._index(entry_id)]

    def set_amount(self, entry_id: str, amount: float) -> FilterStackEntry:
        index = self._index(entry_id)
        updated = replace(self._entries[index], amount=amount)
        self._entries[index] = updated
        return updated

    def move_up(self, entry_id: str) -> bool:
        index = self._index(entry_id)
        if index == 0:
            return False
        self._entries[index - 1], self._entries[index] = self._entries[index], self._entries[index - 1]
        return True

    def move_down(self, entry_id: str) -> bool:
        index = self._index(entry_id)
        if index >= len(self._entries) - 1:
            return False
        self._entries[index], self._entries[index + 1] = self._entries[index + 1], self._entries[index]
        return True

    def clear(self) -> None:
        self._entries.clear()

    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        return apply_filter_stack(buffer, self._entries)

    def to_list(self) -> list:
        return [entry.to_dict() for entry in self._entries]
