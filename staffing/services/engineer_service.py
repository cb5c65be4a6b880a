"""Engineer (人材) data service."""
from __future__ import annotations

import logging

from ..client import BusinessClientManager, QueryError, Record
from .project_service import search_pattern

logger = logging.getLogger(__name__)


class EngineerServiceError(Exception):
    """Raised when an engineer query fails."""
    pass


class EngineerService:
    def __init__(self, manager: BusinessClientManager) -> None:
        self.manager = manager

    async def get_active_engineers(self, tenant_id: str) -> list[Record]:
        try:
            result = await (
                self.manager.get_client()
                .table("engineers")
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .order("created_at", desc=True)
                .execute()
            )
        except QueryError as e:
            logger.error(f"Failed to list engineers for tenant {tenant_id}: {e}")
            raise EngineerServiceError(f"エンジニアリスト取得失敗: {e.message}") from e

        return result.data or []

    async def get_engineer_by_id(self, engineer_id: str, tenant_id: str) -> Record | None:
        try:
            result = await (
                self.manager.get_client()
                .table("engineers")
                .select("*")
                .eq("id", engineer_id)
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .single()
                .execute()
            )
        except Exception as e:
            logger.warning(f"Engineer {engineer_id} lookup failed: {e}")
            return None

        return result.data

    async def search_engineers(
        self,
        tenant_id: str,
        query: str | None = None,
        company_type: str | None = None,
        status: str | None = None,
        skills: list[str] | None = None,
        japanese_level: str | None = None,
        nationality: str | None = None,
    ) -> list[Record]:
        """Search active engineers.

        Free text is matched against name, email and company name. ``"all"``
        disables any exact-match filter.

        Raises:
            EngineerServiceError: If the query fails
        """
        try:
            q = (
                self.manager.get_client()
                .table("engineers")
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
            )
            if query:
                pattern = search_pattern(query)
                q = q.or_(f"name.ilike.{pattern},email.ilike.{pattern},company_name.ilike.{pattern}")
            if company_type and company_type != "all":
                q = q.eq("company_type", company_type)
            if status and status != "all":
                q = q.eq("current_status", status)
            if skills:
                q = q.overlaps("skills", skills)
            if japanese_level and japanese_level != "all":
                q = q.eq("japanese_level", japanese_level)
            if nationality and nationality != "all":
                q = q.eq("nationality", nationality)

            result = await q.order("created_at", desc=True).execute()
        except QueryError as e:
            logger.error(f"Engineer search failed for tenant {tenant_id}: {e}")
            raise EngineerServiceError(f"エンジニア検索失敗: {e.message}") from e

        return result.data or []

    async def get_skills_list(self, tenant_id: str) -> list[str]:
        """All skills of active engineers, unique and sorted; [] on error."""
        try:
            result = await (
                self.manager.get_client()
                .table("engineers")
                .select("skills")
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .not_is("skills", None)
                .execute()
            )
        except Exception as e:
            logger.error(f"Skill list lookup failed: {e}")
            return []

        skills = {skill for row in result.data or [] for skill in row.get("skills") or [] if skill}
        return sorted(skills)

    async def get_nationality_list(self, tenant_id: str) -> list[str]:
        try:
            result = await (
                self.manager.get_client()
                .table("engineers")
                .select("nationality")
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .not_is("nationality", None)
                .execute()
            )
        except Exception as e:
            logger.error(f"Nationality list lookup failed: {e}")
            return []

        return sorted({row["nationality"] for row in result.data or [] if row.get("nationality")})
