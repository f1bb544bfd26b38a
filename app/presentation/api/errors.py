"""Translation of identity failures into HTTP responses."""

import logging
import math
from typing import Dict, Type

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ...domain.errors import (
    AccountNotFound,
    AccountPendingApproval,
    DuplicateEmail,
    EmailNotFound,
    IdentityError,
    InvalidCredentials,
    InvalidOrExpiredToken,
    RegistrationError,
    RepositoryUnavailable,
    TooManyAttempts,
    WeakPassword,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: Dict[Type[IdentityError], int] = {
    RegistrationError: 422,  # Unprocessable Content
    DuplicateEmail: status.HTTP_409_CONFLICT,
    InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    TooManyAttempts: status.HTTP_429_TOO_MANY_REQUESTS,
    AccountPendingApproval: status.HTTP_403_FORBIDDEN,
    EmailNotFound: status.HTTP_404_NOT_FOUND,
    AccountNotFound: status.HTTP_404_NOT_FOUND,
    InvalidOrExpiredToken: status.HTTP_400_BAD_REQUEST,
    RepositoryUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: IdentityError) -> int:
    for error_type in type(exc).__mro__:
        code = _STATUS_BY_ERROR.get(error_type)
        if code is not None:
            return code
    return status.HTTP_400_BAD_REQUEST


async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    body = {"detail": exc.message, "code": exc.code}
    headers: Dict[str, str] = {}
    if isinstance(exc, WeakPassword):
        body["errors"] = exc.errors
    if isinstance(exc, TooManyAttempts):
        headers["Retry-After"] = str(max(1, math.ceil(exc.lockout_remaining.total_seconds())))
    if isinstance(exc, RepositoryUnavailable):
        logger.warning("Repository unavailable while serving %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status_for(exc), content=body, headers=headers)
