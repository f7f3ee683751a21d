from __future__ import annotations

from typing import Any


class ExternalAPIError(RuntimeError):
    def __init__(self, service: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class BackofficeError(Exception):
    """Base class for errors that end up as a user-visible message."""

    default_message = "Une erreur est survenue."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class FetchError(BackofficeError):
    default_message = "Erreur lors de la récupération des données."


class ValidationError(BackofficeError):
    default_message = "Formulaire invalide."

    def __init__(self, errors: dict[str, str], message: str | None = None) -> None:
        super().__init__(message or next(iter(errors.values()), None))
        self.errors = errors


class ConflictError(BackofficeError):
    default_message = "Ce plat existe déjà dans le menu."


class MutationError(BackofficeError):
    default_message = "Une erreur s'est produite lors de l'enregistrement."


class PartialBatchError(BackofficeError):
    def __init__(self, results: list[Any], message: str | None = None) -> None:
        failed = [result for result in results if not result.ok]
        super().__init__(
            message or f"{len(failed)} opération(s) sur {len(results)} ont échoué."
        )
        self.results = results
        self.failed = failed


class DialogBusyError(BackofficeError):
    default_message = "Une opération est déjà en cours."


class SessionExpiredError(BackofficeError):
    default_message = "Session expirée, veuillez vous reconnecter."
