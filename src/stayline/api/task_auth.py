"""Authentication for worker task endpoints.

Payment finalization arrives through Cloud Tasks, which signs each
request with an OIDC token. Local development may use a shared secret.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os

from fastapi import Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from stayline.observability.logging import get_logger, log_event

logger = get_logger(__name__)

# Audience value that enables the X-Internal-Task-Secret fallback
LOCAL_DEV_AUDIENCE = "stayline-tasks-local"

INTERNAL_SECRET_HEADER = "X-Internal-Task-Secret"


def _unverified_claim(token: str, claim: str) -> str | None:
    """Read a claim from a JWT without verifying it. Diagnostics only."""
    try:
        segment = token.split(".")[1]
        segment += "=" * (-len(segment) % 4)
        payload = json.loads(base64.urlsafe_b64decode(segment))
    except (IndexError, ValueError, binascii.Error):
        return None
    if not isinstance(payload, dict):
        return None
    value = payload.get(claim)
    return str(value) if value is not None else None


def extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[len("Bearer "):] or None


def verify_task_oidc(token: str) -> bool:
    """Verify a Cloud Tasks OIDC token.

    Fails closed when TASKS_OIDC_AUDIENCE is unset. When
    TASKS_OIDC_SERVICE_ACCOUNT is set, the token's email must match it.
    """
    if not token:
        return False

    audience = os.environ.get("TASKS_OIDC_AUDIENCE")
    if not audience:
        log_event(
            logger,
            "TASKS_OIDC_AUDIENCE not configured, rejecting",
            level=logging.ERROR,
            reason="missing_audience_env",
        )
        return False

    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request(), audience=audience)
    except ValueError as exc:
        log_event(
            logger,
            "OIDC token verification failed",
            level=logging.WARNING,
            error=str(exc),
            expected_audience=audience,
            received_audience=_unverified_claim(token, "aud"),
        )
        return False

    expected_email = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")
    if expected_email and claims.get("email", "") != expected_email:
        log_event(logger, "OIDC service account mismatch", level=logging.WARNING, reason="email_mismatch")
        return False
    return True


def verify_task_auth(request: Request) -> bool:
    """OIDC, or the internal secret when running with the local-dev audience."""
    if os.environ.get("TASKS_OIDC_AUDIENCE", "") == LOCAL_DEV_AUDIENCE:
        internal_secret = os.environ.get("INTERNAL_TASK_SECRET", "")
        if internal_secret and request.headers.get(INTERNAL_SECRET_HEADER, "") == internal_secret:
            log_event(logger, "task auth via internal secret (local dev)", auth_method="internal_secret")
            return True

    token = extract_bearer_token(request)
    if not token:
        log_event(
            logger,
            "task auth failed: missing Bearer token",
            level=logging.WARNING,
            reason="missing_bearer_token",
        )
        return False
    return verify_task_oidc(token)
