"""Runtime configuration fetched from the backend ``frontend-env`` endpoint."""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

ENV_PATH = "/api/v1/config/frontend-env"
HEALTH_PATH = "/api/v1/config/frontend-env/health"

# Process-wide runtime values applied by ``ConfigService.apply_env_to_runtime``
RUNTIME_ENV: dict[str, str] = {}


class ConfigServiceError(Exception):
    """Raised when runtime configuration cannot be loaded."""
    pass


class ConfigService:
    """Fetches and caches the backend-provided environment map."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        cache_seconds: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.backend.api_url).rstrip("/")
        self.api_key = settings.backend.api_key if api_key is None else api_key
        self.cache_seconds = settings.runtime_config.cache_seconds if cache_seconds is None else cache_seconds
        self.transport = transport
        self._cache: dict[str, str] | None = None
        self._cache_expiry = 0.0

    def set_base_url(self, url: str) -> None:
        self.base_url = url.rstrip("/")
        self.clear_cache()

    def set_api_key(self, key: str) -> None:
        self.api_key = key

    def _cache_valid(self) -> bool:
        return self._cache is not None and time.monotonic() < self._cache_expiry

    async def get_frontend_env(self) -> dict[str, str]:
        """Return the environment map, from cache when fresh.

        Raises:
            ConfigServiceError: If the endpoint fails or reports ``success: false``
        """
        if self._cache_valid():
            logger.debug("Using cached runtime environment")
            return dict(self._cache)

        try:
            async with httpx.AsyncClient(timeout=settings.backend.timeout_seconds, transport=self.transport) as client:
                response = await client.get(
                    f"{self.base_url}{ENV_PATH}",
                    headers={"Content-Type": "application/json", "X-API-Key": self.api_key},
                )
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch runtime environment: {e}")
            raise ConfigServiceError(f"Cannot load environment variables from backend API: {e}") from e

        if not result.get("success"):
            message = result.get("message") or "Failed to fetch environment variables"
            logger.error(f"Runtime environment endpoint refused: {message}")
            raise ConfigServiceError(f"Cannot load environment variables from backend API: {message}")

        self._cache = dict(result.get("data") or {})
        self._cache_expiry = time.monotonic() + self.cache_seconds
        logger.info(f"Loaded {result.get('count', len(self._cache))} runtime environment variables")
        return dict(self._cache)

    async def check_health(self) -> dict:
        """Health of the backend environment; never raises."""
        try:
            async with httpx.AsyncClient(timeout=settings.backend.timeout_seconds, transport=self.transport) as client:
                response = await client.get(
                    f"{self.base_url}{HEALTH_PATH}",
                    headers={"Content-Type": "application/json"},
                )
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Runtime environment health check failed: {e}")
            return {
                "status": "error",
                "message": f"Health check failed: {e}",
                "missing_critical_vars": [],
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "environment": "unknown",
            }

        missing = result.get("missing_critical_vars") or []
        if missing:
            logger.warning(f"Missing critical environment variables: {missing}")
        return result

    def apply_env_to_runtime(self, env: dict[str, str]) -> int:
        """Copy non-blank values into ``RUNTIME_ENV``; returns how many were applied."""
        applied = 0
        for key, value in env.items():
            if isinstance(value, str) and value.strip():
                RUNTIME_ENV[key] = value
                applied += 1
        logger.info(f"Applied {applied} environment variables to runtime")
        return applied

    def clear_cache(self) -> None:
        self._cache = None
        self._cache_expiry = 0.0

    def get_cached_env(self) -> dict[str, str] | None:
        if self._cache_valid():
            return dict(self._cache)
        return None
