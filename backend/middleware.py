from fastapi import Request, HTTPException, status
import hmac
import os
import logging

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


async def require_api_key(request: Request) -> None:
    """Require the shared secret (CRON_API_KEY) in the X-API-Key header.

    Used by the external scheduler trigger and other machine-to-machine routes.
    """
    configured = (os.getenv("CRON_API_KEY") or "").strip()
    if not configured:
        logger.error("CRON_API_KEY not configured; rejecting machine-to-machine request")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "API key not configured", "code": "NOT_CONFIGURED"}
        )

    provided = (request.headers.get(API_KEY_HEADER) or "").strip()
    if not provided or not hmac.compare_digest(provided, configured):
        logger.warning(f"Invalid API key on {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid API key", "code": "INVALID_API_KEY"}
        )
