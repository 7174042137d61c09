"""
Canonical public frontend base URL and customer booking-management links.
Use build_management_url() for ALL customer email links and build_management_url_suffix()
for WhatsApp URL buttons. No other code should build booking links directly.
"""
from typing import Optional
import os
import logging

logger = logging.getLogger(__name__)

MANAGEMENT_ACTIONS = ("cancel", "reschedule")


def get_public_app_url() -> str:
    """
    Return normalized public frontend base URL (no trailing slash).
    Fallback order: FRONTEND_PUBLIC_URL, PUBLIC_APP_URL, FRONTEND_URL.

    Rules:
    - Result is stripped and trailing slash removed.
    - Non-localhost http URLs are upgraded to https.
    - Missing configuration falls back to http://localhost:3000, which is refused in production.
    """
    raw = (
        (os.getenv("FRONTEND_PUBLIC_URL") or "").strip()
        or (os.getenv("PUBLIC_APP_URL") or "").strip()
        or (os.getenv("FRONTEND_URL") or "").strip()
    )
    raw = raw.rstrip("/")
    if not raw:
        env = (os.getenv("ENVIRONMENT") or "").strip().lower()
        if env in ("production", "prod"):
            raise ValueError(
                "FRONTEND_PUBLIC_URL must be set in production. "
                "Set FRONTEND_PUBLIC_URL=https://<your-frontend-domain> (no trailing slash)."
            )
        logger.warning("FRONTEND_PUBLIC_URL not set; using http://localhost:3000 for booking links")
        return "http://localhost:3000"
    if raw.startswith("http://") and "localhost" not in raw:
        raw = "https://" + raw.split("://", 1)[1]
    return raw


def build_management_url_suffix(slug: str, token: str, action: Optional[str] = None) -> str:
    """Path relative to `/booking/`, e.g. `acme/manage/tok123?action=cancel`."""
    suffix = f"{slug}/manage/{token}"
    if action:
        if action not in MANAGEMENT_ACTIONS:
            raise ValueError(f"Unknown management action: {action}")
        suffix = f"{suffix}?action={action}"
    return suffix


def build_management_url(slug: str, token: str, action: Optional[str] = None, base_url: Optional[str] = None) -> str:
    base = (base_url or get_public_app_url()).rstrip("/")
    return f"{base}/booking/{build_management_url_suffix(slug, token, action)}"
