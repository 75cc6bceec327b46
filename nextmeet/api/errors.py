# nextmeet/api/errors.py
from fastapi import HTTPException, status

from nextmeet.schemas.provider import ProviderId
from nextmeet.services.errors import AuthError, AuthErrorKind, FetchError

_AUTH_STATUS = {
    AuthErrorKind.CONSENT_DENIED: status.HTTP_400_BAD_REQUEST,
    AuthErrorKind.CONFIGURATION_MISSING: status.HTTP_409_CONFLICT,
    AuthErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.REAUTH_REQUIRED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.REVOKED: status.HTTP_401_UNAUTHORIZED,
}


def parse_provider_id(value: str) -> ProviderId:
    """
    Resolve a path segment to a ProviderId, answering 404 for unknown ids.
    """
    try:
        return ProviderId(value.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown calendar provider '{value}'.",
        ) from None


def http_error_for(exc: Exception) -> HTTPException:
    """
    Translate engine exceptions into HTTP errors for the control API.
    """
    if isinstance(exc, AuthError):
        return HTTPException(
            status_code=_AUTH_STATUS[exc.kind],
            detail={"kind": exc.kind.value, "message": str(exc)},
        )
    if isinstance(exc, FetchError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"kind": exc.kind.value, "message": str(exc)},
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
