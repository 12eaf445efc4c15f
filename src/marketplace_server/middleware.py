"""
Session authentication for marketplace endpoints.

Endpoints that act on behalf of a user take a ``RequestAuthenticator``
dependency, which reads the bearer session token from the Authorization
header and resolves it to the logged-in user.
"""

import re
from typing import Any, Dict, Optional

from fastapi import Header, HTTPException, Request

from ..shared.logging_utils import ComponentType, create_logger
from .storage import SessionStore

logger = create_logger(ComponentType.MARKETPLACE.value)

BEARER_TOKEN_PATTERN = re.compile(r'^Bearer\s+([A-Za-z0-9\-._~+/]+=*)$')
TOKEN_MIN_LENGTH = 10
TOKEN_MAX_LENGTH = 512


class SessionValidationError(Exception):
    """Missing, malformed, unknown or expired session token."""

    def __init__(self, error_code: str, description: str, status_code: int = 401):
        self.error_code = error_code
        self.description = description
        self.status_code = status_code
        super().__init__(description)


def parse_authorization_header(authorization: Optional[str]) -> str:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        SessionValidationError: If header is missing or malformed
    """
    if not authorization:
        raise SessionValidationError(
            "authentication_required",
            "Authentication required"
        )

    match = BEARER_TOKEN_PATTERN.match(authorization)
    if not match:
        raise SessionValidationError(
            "invalid_authorization_format",
            "Authorization header must be in format: 'Bearer <token>'"
        )

    token = match.group(1)
    if not TOKEN_MIN_LENGTH <= len(token) <= TOKEN_MAX_LENGTH:
        raise SessionValidationError(
            "invalid_token_format",
            f"Token must be between {TOKEN_MIN_LENGTH} and {TOKEN_MAX_LENGTH} characters"
        )

    return token


class RequestAuthenticator:
    """
    FastAPI dependency resolving the caller's session to a user profile.

    With ``required=False`` anonymous requests resolve to None instead of
    failing; a token that is present but invalid is still rejected.
    """

    def __init__(self, session_store: SessionStore, required: bool = True):
        self.session_store = session_store
        self.required = required

    async def __call__(self,
                       request: Request,
                       authorization: Optional[str] = Header(None)) -> Optional[Dict[str, Any]]:
        if authorization is None and not self.required:
            return None

        try:
            token = parse_authorization_header(authorization)
            user = self.session_store.resolve(token)
            if user is None:
                raise SessionValidationError(
                    "invalid_session",
                    "Session is invalid or has expired"
                )
        except SessionValidationError as e:
            logger.log_message(
                ComponentType.CLIENT.value, ComponentType.MARKETPLACE.value,
                "Session Validation Failed",
                {
                    "method": request.method,
                    "path": str(request.url.path),
                    "error": e.error_code,
                    "client_ip": request.client.host if request.client else "unknown"
                }
            )
            raise HTTPException(
                status_code=e.status_code,
                detail={"error": e.error_code, "error_description": e.description},
                headers={"WWW-Authenticate": "Bearer"}
            )

        user['session_token'] = token
        return user
