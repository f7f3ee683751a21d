from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar

import structlog
from pydantic import BaseModel

from backoffice.core.errors import ExternalAPIError, FetchError

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class RemoteCollection(Generic[T]):
    """Last-known snapshot of a server-side collection.

    Every refresh replaces the whole snapshot. Local edits (``remove``,
    ``patch``) are applied only after the server has confirmed the write.
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Iterable[T]],
        key: Callable[[T], int],
    ) -> None:
        self.name = name
        self._fetch = fetch
        self._key = key
        self._items: tuple[T, ...] = ()
        self.loaded = False
        self.version = 0

    @property
    def items(self) -> tuple[T, ...]:
        return self._items

    def __len__(self) -> int:
        return len(self._items)

    def ids(self) -> list[int]:
        return [self._key(item) for item in self._items]

    def get(self, entity_id: int) -> T | None:
        for item in self._items:
            if self._key(item) == entity_id:
                return item
        return None

    def refresh(self) -> tuple[T, ...]:
        try:
            items = tuple(self._fetch())
        except FetchError:
            logger.warning("collection_refresh_failed", collection=self.name)
            raise
        except ExternalAPIError as exc:
            logger.warning(
                "collection_refresh_failed",
                collection=self.name,
                status_code=exc.status_code,
                error=str(exc),
            )
            raise FetchError() from exc
        self._replace(items)
        logger.info("collection_refreshed", collection=self.name, count=len(items))
        return self._items

    def remove(self, entity_id: int) -> bool:
        remaining = tuple(item for item in self._items if self._key(item) != entity_id)
        if len(remaining) == len(self._items):
            return False
        self._replace(remaining)
        return True

    def patch(self, entity_id: int, **changes: Any) -> T | None:
        patched: T | None = None
        items = []
        for item in self._items:
            if self._key(item) == entity_id:
                patched = item.model_copy(update=changes)
                items.append(patched)
            else:
                items.append(item)
        if patched is not None:
            self._replace(tuple(items))
        return patched

    def patch_many(self, entity_ids: Iterable[int], **changes: Any) -> int:
        wanted = set(entity_ids)
        count = 0
        items = []
        for item in self._items:
            if self._key(item) in wanted:
                items.append(item.model_copy(update=changes))
                count += 1
            else:
                items.append(item)
        if count:
            self._replace(tuple(items))
        return count

    def _replace(self, items: tuple[T, ...]) -> None:
        self._items = items
        self.loaded = True
        self.version += 1


def as_fetch(loader: Callable[[], Any], message: str | None = None) -> Callable[[], Any]:
    """Wrap a dialog loader so transport failures surface as ``FetchError``."""

    def run() -> Any:
        try:
            return loader()
        except ExternalAPIError as exc:
            logger.warning("dialog_fetch_failed", status_code=exc.status_code, error=str(exc))
            raise FetchError(message) from exc

    return run
