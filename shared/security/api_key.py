"""
Internal API key for the admin dashboard backend and the sweep cron job.

An unset key does not stop the process: local runs fall back to a known
placeholder and a warning is emitted so a misconfigured deployment shows up
in the logs instead of silently accepting it.
"""
import os
import secrets
import warnings

PLACEHOLDER_KEY = "insecure-default-change-me"


def _load_internal_key() -> str:
    key = os.getenv("INTERNAL_API_KEY", "").strip()
    if key:
        return key
    warnings.warn(
        "INTERNAL_API_KEY is not set; admin and sweep endpoints accept the placeholder key.",
        stacklevel=2,
    )
    return PLACEHOLDER_KEY


INTERNAL_API_KEY: str = _load_internal_key()


def verify_api_key(provided_key) -> bool:
    """Constant-time comparison against the configured key."""
    if not provided_key:
        return False
    return secrets.compare_digest(str(provided_key).encode(), INTERNAL_API_KEY.encode())
