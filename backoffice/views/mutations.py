from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from backoffice.core.errors import (
    BackofficeError,
    ConflictError,
    DialogBusyError,
    ExternalAPIError,
    MutationError,
    PartialBatchError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BatchResult:
    entity_id: int
    ok: bool
    error: str | None = None
    conflict: bool = False


class MutationCoordinator:
    """Runs one write against the API and converts its failure into a user error.

    Local state is never touched here: callers apply their local effect only
    after ``run`` returned, i.e. after the server acknowledged the write.
    """

    def __init__(self, screen: str) -> None:
        self.screen = screen
        self._in_flight: set[str] = set()

    def is_busy(self, action: str) -> bool:
        return action in self._in_flight

    def run(
        self,
        action: str,
        call: Callable[[], T],
        *,
        conflict_statuses: Iterable[int] = (),
        conflict_message: str | None = None,
        failure_message: str | None = None,
    ) -> T:
        if action in self._in_flight:
            raise DialogBusyError()
        self._in_flight.add(action)
        try:
            result = call()
        except BackofficeError:
            raise
        except ExternalAPIError as exc:
            if exc.status_code is not None and exc.status_code in set(conflict_statuses):
                logger.info("mutation_conflict", screen=self.screen, action=action)
                raise ConflictError(conflict_message) from exc
            logger.warning(
                "mutation_failed",
                screen=self.screen,
                action=action,
                status_code=exc.status_code,
                error=str(exc),
            )
            raise MutationError(failure_message) from exc
        finally:
            self._in_flight.discard(action)
        logger.info("mutation_applied", screen=self.screen, action=action)
        return result

    def run_batch(
        self,
        action: str,
        entity_ids: Iterable[int],
        call: Callable[[int], object],
        *,
        conflict_statuses: Iterable[int] = (),
    ) -> list[BatchResult]:
        """Run ``call`` once per id and report every outcome; nothing is rolled back."""
        if action in self._in_flight:
            raise DialogBusyError()
        conflicts = set(conflict_statuses)
        results = []
        self._in_flight.add(action)
        try:
            for entity_id in entity_ids:
                try:
                    call(entity_id)
                except ExternalAPIError as exc:
                    results.append(
                        BatchResult(
                            entity_id=entity_id,
                            ok=False,
                            error=str(exc),
                            conflict=exc.status_code in conflicts,
                        )
                    )
                else:
                    results.append(BatchResult(entity_id=entity_id, ok=True))
        finally:
            self._in_flight.discard(action)
        failed = sum(1 for result in results if not result.ok)
        logger.info(
            "mutation_batch_applied",
            screen=self.screen,
            action=action,
            total=len(results),
            failed=failed,
        )
        return results


def raise_for_batch(results: list[BatchResult], message: str | None = None) -> None:
    if any(not result.ok for result in results):
        raise PartialBatchError(results, message)
