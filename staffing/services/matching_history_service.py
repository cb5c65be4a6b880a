"""Saved matching history over ``project_engineer_matches``."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from config.email_templates import SAVED_MATCH_STATUS

from ..client import BusinessClientManager, QueryError, Record
from .engineer_service import EngineerService
from .project_service import ProjectService

logger = logging.getLogger(__name__)


class MatchingHistoryError(Exception):
    """Raised when matching history cannot be read or changed."""
    pass


class MatchingHistoryService:
    def __init__(
        self,
        manager: BusinessClientManager,
        projects: ProjectService | None = None,
        engineers: EngineerService | None = None,
    ) -> None:
        self.manager = manager
        self.projects = projects or ProjectService(manager)
        self.engineers = engineers or EngineerService(manager)

    async def _with_details(self, match: Record, tenant_id: str) -> Record:
        project_id = match.get("project_id")
        engineer_id = match.get("engineer_id")
        project_detail, engineer_detail = await asyncio.gather(
            self.projects.get_project_by_id(project_id, tenant_id) if project_id else _none(),
            self.engineers.get_engineer_by_id(engineer_id, tenant_id) if engineer_id else _none(),
        )
        return {**match, "project_detail": project_detail, "engineer_detail": engineer_detail}

    async def get_saved_matching_history(self, tenant_id: str) -> list[Record]:
        """Saved matches, most recently updated first, with project/engineer detail.

        Raises:
            MatchingHistoryError: If the query fails
        """
        try:
            result = await (
                self.manager.get_client()
                .table("project_engineer_matches")
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("status", SAVED_MATCH_STATUS)
                .eq("is_active", True)
                .order("updated_at", desc=True)
                .execute()
            )
        except QueryError as e:
            logger.error(f"Saved matching history lookup failed: {e}")
            raise MatchingHistoryError(f"マッチング履歴取得失敗: {e.message}") from e

        rows = result.data or []
        if not rows:
            logger.info(f"No saved matches for tenant {tenant_id}")
            return []

        return list(await asyncio.gather(*(self._with_details(row, tenant_id) for row in rows)))

    async def get_matching_history_by_id(self, match_id: str, tenant_id: str) -> Record | None:
        try:
            result = await (
                self.manager.get_client()
                .table("project_engineer_matches")
                .select("*")
                .eq("id", match_id)
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .single()
                .execute()
            )
        except Exception as e:
            logger.warning(f"Matching history {match_id} lookup failed: {e}")
            return None

        return await self._with_details(result.data, tenant_id)

    async def delete_matching_history(self, match_id: str, tenant_id: str) -> None:
        """Soft-delete a saved match.

        Raises:
            MatchingHistoryError: If the update fails or no row matched
        """
        try:
            result = await (
                self.manager.get_client()
                .table("project_engineer_matches")
                .update({"is_active": False, "updated_at": datetime.utcnow()})
                .eq("id", match_id)
                .eq("tenant_id", tenant_id)
                .execute()
            )
        except QueryError as e:
            logger.error(f"Deleting matching history {match_id} failed: {e}")
            raise MatchingHistoryError(f"マッチング履歴削除失敗: {e.message}") from e

        if not result.data:
            raise MatchingHistoryError("削除対象のレコードが見つかりませんでした")

        logger.info(f"Matching history {match_id} deleted")


async def _none() -> None:
    return None
