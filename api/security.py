#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Security Module - Shared-secret authentication for scheduled jobs

The watchdog endpoints are called by cron, not by users. The caller
presents the configured secret either as ``x-cron-secret`` or as an
``Authorization: Bearer`` token.
"""

import secrets
import logging
from typing import Optional
from fastapi import HTTPException, Header

from config.settings import settings

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def check_cron_secret(
    expected: str,
    x_cron_secret: Optional[str] = None,
    authorization: Optional[str] = None,
) -> bool:
    """Constant-time comparison; an unset secret matches nothing."""
    if not expected:
        return False
    for candidate in (x_cron_secret, _bearer_token(authorization)):
        if candidate and secrets.compare_digest(candidate, expected):
            return True
    return False


async def verify_cron_secret(
    x_cron_secret: Optional[str] = Header(None, alias="x-cron-secret"),
    authorization: Optional[str] = Header(None),
):
    """
    FastAPI dependency for cron-only endpoints.

    Usage:
        @router.post("/job/auto-resume", dependencies=[Depends(verify_cron_secret)])
    """
    if not settings.cron_secret:
        logger.error("CRON_SECRET is not configured; rejecting watchdog call")
    if not check_cron_secret(settings.cron_secret, x_cron_secret, authorization):
        raise HTTPException(status_code=401, detail="Unauthorized")
