"""Client for the external AI matching backend.

The backend scores project/engineer pairs; this module only builds the
requests and decodes the responses.
"""
from __future__ import annotations

import logging
import math
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from staffing.config import settings

logger = logging.getLogger(__name__)

BASE_PATH = "/api/v1/ai-matching"


class ApiError(Exception):
    """Raised when the matching backend fails.

    ``status`` is the HTTP status, or 0 for transport failures.
    """

    def __init__(self, message: str, status: int, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details


class BulkMatchItem(BaseModel):
    """One scored pair returned by the bulk matching call."""
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    project_id: str = ""
    engineer_id: str = ""
    match_score: float = 0.0
    confidence_score: float | None = None
    skill_match_score: float | None = None
    experience_match_score: float | None = None
    matched_skills: list[str] = Field(default_factory=list)
    missing_skills: list[str] = Field(default_factory=list)
    match_reasons: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    project_title: str | None = None
    engineer_name: str | None = None
    status: str | None = None
    created_at: str | None = None
    project_manager_name: str | None = None
    project_manager_email: str | None = None
    project_created_by: str | None = None
    engineer_company_name: str | None = None
    engineer_company_type: str | None = None
    engineer_manager_name: str | None = None
    engineer_manager_email: str | None = None

    @field_validator("project_id", "engineer_id", mode="before")
    @classmethod
    def _id_or_empty(cls, v):
        return "" if v is None else v

    @field_validator("match_score", mode="before")
    @classmethod
    def _score_or_zero(cls, v):
        return 0.0 if v is None else v

    @field_validator("matched_skills", "missing_skills", "match_reasons", "concerns", mode="before")
    @classmethod
    def _list_or_empty(cls, v):
        return v if isinstance(v, list) else []


class BulkMatchingRequest(BaseModel):
    tenant_id: str
    project_ids: list[str] | None = None
    engineer_ids: list[str] | None = None
    max_matches: int | None = None
    min_score: float | None = None
    executed_by: str | None = None
    matching_type: str | None = None
    trigger_type: str | None = None
    batch_size: int | None = None
    project_company_type: str | None = None
    engineer_company_type: str | None = None
    project_start_date: str | None = None


class BulkMatchingResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    matches: list[BulkMatchItem] = Field(default_factory=list)
    total_matches: int = 0
    high_quality_matches: int = 0
    processing_time_seconds: float | None = None
    recommendations: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    matching_history: dict[str, Any] | None = None

    @field_validator("matches", "recommendations", "warnings", mode="before")
    @classmethod
    def _list_or_empty(cls, v):
        return v if isinstance(v, list) else []

    @field_validator("total_matches", "high_quality_matches", mode="before")
    @classmethod
    def _count_or_zero(cls, v):
        return 0 if v is None else v


def format_match_score(score: float | None) -> str:
    """``0.82 -> "82%"``, rounding halves up."""
    return f"{math.floor((score or 0.0) * 100 + 0.5)}%"


def get_match_score_label(score: float) -> str:
    if score >= 0.8:
        return "高品質マッチ"
    if score >= 0.6:
        return "中程度マッチ"
    return "低品質マッチ"


class AIMatchingService:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.backend.api_url).rstrip("/")
        self.api_key = settings.backend.api_key if api_key is None else api_key
        self.timeout = timeout or settings.backend.timeout_seconds
        self.transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
    ) -> Any:
        headers = {
            "Content-Type": "application/json",
            "accept": "application/json",
            "X-API-Key": self.api_key,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers=headers,
                    json=json,
                    params=params,
                )
        except httpx.HTTPError as e:
            logger.error(f"Matching backend unreachable ({method} {path}): {e}")
            raise ApiError("ネットワークエラーが発生しました。接続を確認してください。", 0, str(e)) from e

        if response.is_error:
            try:
                details = response.json()
            except ValueError:
                details = {}
            message = details.get("message") if isinstance(details, dict) else None
            logger.error(f"Matching backend returned {response.status_code} for {method} {path}")
            raise ApiError(message or f"HTTPエラー: {response.status_code}", response.status_code, details)

        return response.json()

    async def find_engineers_for_project(
        self,
        tenant_id: str,
        project_id: str,
        max_matches: int | None = None,
        min_score: float | None = None,
        filters: dict | None = None,
    ) -> dict:
        payload = {
            "project_id": project_id,
            "tenant_id": tenant_id,
            "max_matches": max_matches or 10,
            "min_score": 0.7 if min_score is None else min_score,
            "filters": filters or {},
        }
        return await self._request("POST", f"{BASE_PATH}/project-to-engineers", json=payload)

    async def find_projects_for_engineer(
        self,
        tenant_id: str,
        engineer_id: str,
        max_matches: int | None = None,
        min_score: float | None = None,
        filters: dict | None = None,
    ) -> dict:
        payload = {
            "engineer_id": engineer_id,
            "tenant_id": tenant_id,
            "max_matches": max_matches or 10,
            "min_score": 0.7 if min_score is None else min_score,
            "filters": filters or {},
        }
        return await self._request("POST", f"{BASE_PATH}/engineer-to-projects", json=payload)

    async def perform_bulk_matching(self, request: BulkMatchingRequest) -> BulkMatchingResponse:
        """Run bulk matching for a tenant.

        Company-type and start-date filters are sent only when set.

        Raises:
            ApiError: If the backend fails or is unreachable
        """
        payload: dict[str, Any] = {
            "tenant_id": request.tenant_id,
            "project_ids": request.project_ids,
            "engineer_ids": request.engineer_ids,
            "max_matches": request.max_matches or settings.matching.max_matches,
            "min_score": settings.matching.min_score if request.min_score is None else request.min_score,
            "executed_by": request.executed_by,
            "matching_type": request.matching_type or "bulk_matching",
            "trigger_type": request.trigger_type or "api",
            "batch_size": request.batch_size or settings.matching.batch_size,
        }
        for key in ("project_company_type", "engineer_company_type", "project_start_date"):
            value = getattr(request, key)
            if value:
                payload[key] = value

        data = await self._request("POST", f"{BASE_PATH}/bulk-matching", json=payload)
        response = BulkMatchingResponse.model_validate(data)
        logger.info(f"Bulk matching for tenant {request.tenant_id} returned {len(response.matches)} matches")
        return response

    async def update_match_status(
        self,
        tenant_id: str,
        match_id: str,
        status: str,
        comment: str | None = None,
        reviewed_by: str | None = None,
    ) -> dict:
        params = {"status": status}
        if comment:
            params["comment"] = comment
        if reviewed_by:
            params["reviewed_by"] = reviewed_by
        return await self._request("PUT", f"{BASE_PATH}/matches/{tenant_id}/{match_id}/status", params=params)

    async def get_matching_history(
        self,
        tenant_id: str,
        limit: int = 20,
        matching_type: str | None = None,
    ) -> list[dict]:
        params: dict[str, Any] = {"limit": limit}
        if matching_type:
            params["matching_type"] = matching_type
        return await self._request("GET", f"{BASE_PATH}/history/{tenant_id}", params=params)

    async def get_matches_by_history_id(
        self,
        tenant_id: str,
        history_id: str,
        limit: int = 100,
        min_score: float = 0,
    ) -> list[dict]:
        params = {"limit": limit, "min_score": min_score}
        return await self._request("GET", f"{BASE_PATH}/matches/{tenant_id}/{history_id}", params=params)
