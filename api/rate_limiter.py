#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Rate Limiting Module for the Chronicle API

Per-endpoint limits keyed by client address, overridable from the
environment.

Usage:
    from api.rate_limiter import limiter, rate_limit_config

    @router.post("/job")
    @limiter.limit(rate_limit_config.get_limit("job_create"))
    async def endpoint(request: Request):
        ...
"""

import os
from typing import Dict
from dataclasses import dataclass, field
from slowapi import Limiter
from slowapi.util import get_remote_address

from config.settings import settings


@dataclass
class RateLimitConfig:
    """
    Centralized rate limit configuration.

    Limits are defined as "count/period", e.g. "10/minute".
    """

    defaults: Dict[str, str] = field(default_factory=lambda: {
        # Job management
        "job_create": "15/minute",
        "job_tick": "120/minute",
        "job_status": "240/minute",
        "job_cancel": "20/minute",

        # Fallback
        "default": settings.rate_limit,
    })

    # Override limits from environment
    env_overrides: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        """Load overrides from environment variables."""
        # Format: RATE_LIMIT_JOB_CREATE=20/minute
        for key in self.defaults.keys():
            env_key = f"RATE_LIMIT_{key.upper()}"
            if env_value := os.getenv(env_key):
                self.env_overrides[key] = env_value

    def get_limit(self, endpoint: str) -> str:
        """Rate limit string for an endpoint category."""
        if endpoint in self.env_overrides:
            return self.env_overrides[endpoint]
        if endpoint in self.defaults:
            return self.defaults[endpoint]
        return self.env_overrides.get("default", self.defaults["default"])


# Create global config instance
rate_limit_config = RateLimitConfig()

# Create default limiter instance
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[rate_limit_config.get_limit("default")],
)
