"""Client for the external resume parsing service.

Both endpoints take a multipart file upload and answer with a
``{success, message, data}`` envelope.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from staffing.config import settings

logger = logging.getLogger(__name__)


class ResumeParseError(Exception):
    """Raised when a resume cannot be validated or parsed."""
    pass


class ParsedResume(BaseModel):
    """Structured fields extracted from a resume."""
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    age: str | int | None = None
    gender: str | None = None
    nationality: str | None = None
    email: str | None = None
    phone: str | None = None
    nearest_station: str | None = None
    education: str | None = None
    arrival_year_japan: str | int | None = None
    certifications: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    technical_keywords: list[str] = Field(default_factory=list)
    experience: str | None = None
    work_scope: str | None = None
    work_experience: str | None = None
    japanese_level: str | None = None
    english_level: str | None = None
    self_promotion: str | None = None


class ResumeParserClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.backend.resume_parser_url).rstrip("/")
        self.api_key = settings.backend.api_key if api_key is None else api_key
        self.timeout = timeout or settings.backend.timeout_seconds
        self.transport = transport

    def _headers(self, access_token: str | None, tenant_id: str) -> dict[str, str]:
        headers = {"X-API-Key": self.api_key, "X-Tenant-ID": tenant_id}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _upload(
        self,
        endpoint: str,
        filename: str,
        content: bytes,
        content_type: str,
        tenant_id: str,
        access_token: str | None,
    ) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/{endpoint}",
                    headers=self._headers(access_token, tenant_id),
                    files={"file": (filename, content, content_type)},
                )
        except httpx.HTTPError as e:
            logger.error(f"Resume service unreachable ({endpoint}): {e}")
            raise ResumeParseError(f"履歴書解析サービスに接続できません: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error or not body.get("success"):
            message = body.get("message") or body.get("detail") or f"HTTP {response.status_code}"
            logger.warning(f"Resume {endpoint} rejected {filename}: {message}")
            raise ResumeParseError(message)

        return body

    async def validate(
        self,
        filename: str,
        content: bytes,
        content_type: str,
        *,
        tenant_id: str,
        access_token: str | None = None,
    ) -> dict[str, Any]:
        """Check that the file is a parseable resume.

        Returns:
            The ``data`` section of the response envelope
        """
        body = await self._upload("validate", filename, content, content_type, tenant_id, access_token)
        return body.get("data") or {}

    async def parse(
        self,
        filename: str,
        content: bytes,
        content_type: str,
        *,
        tenant_id: str,
        access_token: str | None = None,
    ) -> ParsedResume:
        """Extract structured fields from a resume file.

        Raises:
            ResumeParseError: If the service fails or returns malformed data
        """
        body = await self._upload("parse", filename, content, content_type, tenant_id, access_token)
        try:
            parsed = ParsedResume.model_validate(body.get("data") or {})
        except ValidationError as e:
            raise ResumeParseError(f"解析結果の形式が不正です: {e}") from e

        logger.info(f"Parsed resume {filename} ({len(parsed.skills)} skills)")
        return parsed
