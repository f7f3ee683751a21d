from __future__ import annotations

import time
from collections.abc import Callable
from enum import Enum
from typing import TypeVar

import structlog

from backoffice.core.config import settings
from backoffice.core.errors import BackofficeError, DialogBusyError, ValidationError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class DialogState(str, Enum):
    closed = "closed"
    loading = "loading"
    ready = "ready"
    submitting = "submitting"
    success = "success"
    error = "error"


class Dialog:
    """Lifecycle shared by every add/edit dialog.

    Closed -> Loading -> Ready -> Submitting -> Success -> (delay) -> Closed.
    Failures leave the dialog open in Error with a message; cancelling is
    always allowed. Results that come back after the dialog was closed or
    reopened are dropped.
    """

    def __init__(
        self,
        name: str,
        *,
        close_delay: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.close_delay = settings.dialog_close_delay if close_delay is None else close_delay
        self._clock = clock
        self.state = DialogState.closed
        self.error: str | None = None
        self.field_errors: dict[str, str] = {}
        self.generation = 0
        self._succeeded_at: float | None = None
        self._on_open: list[Callable[[], None]] = []
        self._on_closed_after_success: list[Callable[[], None]] = []
        self._load_succeeded = False

    def on_open(self, callback: Callable[[], None]) -> None:
        self._on_open.append(callback)

    def on_success_closed(self, callback: Callable[[], None]) -> None:
        self._on_closed_after_success.append(callback)

    @property
    def is_open(self) -> bool:
        return self.state is not DialogState.closed

    @property
    def is_busy(self) -> bool:
        return self.state in (DialogState.loading, DialogState.submitting)

    def open(self, loader: Callable[[], None] | None = None) -> DialogState:
        if self.state is DialogState.closed:
            self.generation += 1
            self.error = None
            self.field_errors = {}
            for callback in self._on_open:
                callback()
        return self.load(loader)

    def load(self, loader: Callable[[], None] | None = None) -> DialogState:
        self.state = DialogState.loading
        self._load_succeeded = False
        if loader is None:
            self._load_succeeded = True
            self.state = DialogState.ready
            return self.state
        generation = self.generation
        try:
            loader()
        except BackofficeError as exc:
            if generation == self.generation and self.state is DialogState.loading:
                self.error = exc.message
                self.state = DialogState.error
                logger.warning("dialog_load_failed", dialog=self.name, error=exc.message)
            return self.state
        if generation == self.generation and self.state is DialogState.loading:
            self._load_succeeded = True
            self.error = None
            self.state = DialogState.ready
        return self.state

    def submit(
        self,
        action: Callable[[], T],
        validate: Callable[[], None] | None = None,
    ) -> T | None:
        if self.state is DialogState.submitting:
            raise DialogBusyError()
        if self.state is DialogState.error and not self._load_succeeded:
            raise DialogBusyError("Les données du formulaire ne sont pas chargées.")
        if self.state not in (DialogState.ready, DialogState.error):
            raise DialogBusyError(f"Dialog {self.name} is {self.state.value}")

        if validate is not None:
            try:
                validate()
            except ValidationError as exc:
                self.field_errors = exc.errors
                self.state = DialogState.ready
                raise

        self.field_errors = {}
        self.error = None
        self.state = DialogState.submitting
        generation = self.generation
        try:
            result = action()
        except BackofficeError as exc:
            if generation == self.generation and self.state is DialogState.submitting:
                self.error = exc.message
                self.state = DialogState.error
            raise
        if generation != self.generation or self.state is not DialogState.submitting:
            logger.info("dialog_result_ignored", dialog=self.name)
            return None
        self.state = DialogState.success
        self._succeeded_at = self._clock()
        return result

    def poll(self) -> DialogState:
        """Close a succeeded dialog once the confirmation delay has elapsed."""
        if self.state is DialogState.success and self._succeeded_at is not None:
            if self._clock() - self._succeeded_at >= self.close_delay:
                self._close()
                for callback in self._on_closed_after_success:
                    try:
                        callback()
                    except BackofficeError as exc:
                        # Already closed: the message stays until the next open
                        self.error = exc.message
                        logger.warning("dialog_after_close_failed", dialog=self.name, error=exc.message)
        return self.state

    def cancel(self) -> None:
        self._close()

    def _close(self) -> None:
        self.state = DialogState.closed
        self._succeeded_at = None
        self.error = None
        self.field_errors = {}
        self.generation += 1
