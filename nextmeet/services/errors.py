# nextmeet/services/errors.py
from __future__ import annotations

from enum import Enum


class AuthErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    REAUTH_REQUIRED = "reauth_required"
    REVOKED = "revoked"
    CONSENT_DENIED = "consent_denied"
    CONFIGURATION_MISSING = "configuration_missing"


class FetchErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    NETWORK = "network"
    PARSE = "parse"
    TIMEOUT = "timeout"


class AuthError(RuntimeError):
    """
    Raised when a provider cannot produce a usable credential: no token set
    is stored, a refresh was definitively rejected, the user declined
    consent, or the OAuth client is not configured.
    """

    def __init__(self, kind: AuthErrorKind, message: str | None = None) -> None:
        super().__init__(message or kind.value)
        self.kind = kind


class FetchError(RuntimeError):
    """
    Raised when reading events from a provider fails.

    `unauthorized` failures downgrade the provider until the user reconnects;
    the other kinds are transient and retried by the next scheduled cycle.
    """

    def __init__(self, kind: FetchErrorKind, message: str | None = None) -> None:
        super().__init__(message or kind.value)
        self.kind = kind

    @property
    def is_transient(self) -> bool:
        return self.kind is not FetchErrorKind.UNAUTHORIZED


class ProviderNotFound(LookupError):
    """
    Raised by the engine facade for a provider id it does not manage.
    """
