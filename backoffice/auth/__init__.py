from backoffice.auth.session import Session

__all__ = ["Session"]
