"""Project (案件) data service."""
from __future__ import annotations

import logging

from ..client import BusinessClientManager, QueryError, Record

logger = logging.getLogger(__name__)


class ProjectServiceError(Exception):
    """Raised when a project query fails."""
    pass


def search_pattern(term: str) -> str:
    """``%term%`` with characters that break the OR grammar removed."""
    cleaned = term.replace(",", " ").replace("(", " ").replace(")", " ").strip()
    return f"%{cleaned}%"


class ProjectService:
    def __init__(self, manager: BusinessClientManager) -> None:
        self.manager = manager

    async def get_active_projects(self, tenant_id: str) -> list[Record]:
        """Active projects of a tenant, newest first.

        Raises:
            ProjectServiceError: If the query fails
        """
        try:
            result = await (
                self.manager.get_client()
                .table("projects")
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .order("created_at", desc=True)
                .execute()
            )
        except QueryError as e:
            logger.error(f"Failed to list projects for tenant {tenant_id}: {e}")
            raise ProjectServiceError(f"案件リスト取得失敗: {e.message}") from e

        return result.data or []

    async def get_project_by_id(self, project_id: str, tenant_id: str) -> Record | None:
        """Single active project, or None when absent or on error."""
        try:
            result = await (
                self.manager.get_client()
                .table("projects")
                .select("*")
                .eq("id", project_id)
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .single()
                .execute()
            )
        except Exception as e:
            logger.warning(f"Project {project_id} lookup failed: {e}")
            return None

        return result.data

    async def search_projects(
        self,
        tenant_id: str,
        query: str | None = None,
        company_type: str | None = None,
        status: str | None = None,
        skills: list[str] | None = None,
    ) -> list[Record]:
        """Search active projects.

        Args:
            tenant_id: Tenant partition key
            query: Free text matched against title, description and client company
            company_type: Exact company type; ``"all"`` disables the filter
            status: Exact status; ``"all"`` disables the filter
            skills: Matches projects sharing at least one skill

        Returns:
            Matching projects, newest first

        Raises:
            ProjectServiceError: If the query fails
        """
        try:
            q = (
                self.manager.get_client()
                .table("projects")
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
            )
            if query:
                pattern = search_pattern(query)
                q = q.or_(
                    f"title.ilike.{pattern},description.ilike.{pattern},client_company.ilike.{pattern}"
                )
            if company_type and company_type != "all":
                q = q.eq("company_type", company_type)
            if status and status != "all":
                q = q.eq("status", status)
            if skills:
                q = q.overlaps("skills", skills)

            result = await q.order("created_at", desc=True).execute()
        except QueryError as e:
            logger.error(f"Project search failed for tenant {tenant_id}: {e}")
            raise ProjectServiceError(f"案件検索失敗: {e.message}") from e

        return result.data or []

    async def get_company_list(self, tenant_id: str) -> list[str]:
        """Distinct non-empty client companies; [] on error."""
        try:
            result = await (
                self.manager.get_client()
                .table("projects")
                .select("client_company")
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .not_is("client_company", None)
                .execute()
            )
        except Exception as e:
            logger.error(f"Company list lookup failed: {e}")
            return []

        companies = [row["client_company"] for row in result.data or [] if row.get("client_company")]
        return list(dict.fromkeys(companies))
