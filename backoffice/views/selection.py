from __future__ import annotations

from collections.abc import Iterator


class QuantitySelection:
    """Entity id -> requested quantity, alive for one dialog opening.

    A quantity never drops below 1: going under it removes the entry.
    """

    def __init__(self) -> None:
        self._quantities: dict[int, int] = {}

    def reset(self) -> None:
        self._quantities = {}

    def toggle(self, entity_id: int) -> None:
        if entity_id in self._quantities:
            del self._quantities[entity_id]
        else:
            self._quantities[entity_id] = 1

    def increment(self, entity_id: int, step: int = 1) -> int:
        return self.set_quantity(entity_id, self.quantity(entity_id) + step)

    def decrement(self, entity_id: int) -> int:
        return self.increment(entity_id, -1)

    def set_quantity(self, entity_id: int, quantity: int) -> int:
        if quantity < 1:
            self._quantities.pop(entity_id, None)
            return 0
        self._quantities[entity_id] = quantity
        return quantity

    def quantity(self, entity_id: int) -> int:
        return self._quantities.get(entity_id, 0)

    def items(self) -> list[tuple[int, int]]:
        return list(self._quantities.items())

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._quantities

    def __len__(self) -> int:
        return len(self._quantities)

    def __iter__(self) -> Iterator[int]:
        return iter(self._quantities)


class ToggleSet:
    """Expanded/collapsed flags keyed by entity id."""

    def __init__(self) -> None:
        self._ids: set[int] = set()

    def toggle(self, entity_id: int) -> bool:
        if entity_id in self._ids:
            self._ids.discard(entity_id)
            return False
        self._ids.add(entity_id)
        return True

    def is_set(self, entity_id: int) -> bool:
        return entity_id in self._ids

    def reset(self) -> None:
        self._ids = set()

    def __len__(self) -> int:
        return len(self._ids)
