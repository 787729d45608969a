"""
Bearer-token authentication for the internal trigger endpoints.

Used by cron jobs and operators; there is no user auth in this service.
"""

import hmac

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.logging import get_logger
from core.settings import settings

security = HTTPBearer()
log = get_logger("auth")


def verify_pipeline_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> str:
    """
    Compare the bearer token with PIPELINE_API_TOKEN in constant time.

    Raises:
        HTTPException: 500 when no token is configured, 401 on mismatch
    """
    expected = settings.pipeline_api_token.get_secret_value()
    if not expected:
        log.error("pipeline_token_not_configured")
        raise HTTPException(status_code=500, detail="Server misconfigured: PIPELINE_API_TOKEN not set")

    if not hmac.compare_digest(credentials.credentials.encode(), expected.encode()):
        log.warning(
            "trigger_token_rejected",
            path=request.url.path,
            client=request.client.host if request.client else None,
        )
        raise HTTPException(status_code=401, detail="Invalid pipeline authentication token")

    return credentials.credentials
