"""E-mail template data service."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ..client import BusinessClientManager, QueryError, Record
from .project_service import search_pattern

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "name",
    "description",
    "category",
    "subject_template",
    "body_template_text",
    "body_template_html",
    "signature_template",
    "available_placeholders",
    "required_placeholders",
    "ai_summary_enabled",
    "is_active",
)


class EmailTemplateError(Exception):
    """Raised when a template query fails."""
    pass


class EmailTemplateService:
    def __init__(self, manager: BusinessClientManager) -> None:
        self.manager = manager

    def _table(self):
        return self.manager.get_client().table("email_templates")

    async def get_templates(
        self,
        tenant_id: str,
        category: str | None = None,
        is_active: bool | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        """Non-deleted templates of a tenant, newest first.

        Raises:
            EmailTemplateError: If the query fails
        """
        try:
            q = self._table().select("*").eq("tenant_id", tenant_id)
            if category:
                q = q.eq("category", category)
            if is_active is not None:
                q = q.eq("is_active", is_active)
            q = q.is_("deleted_at", None).order("created_at", desc=True)
            if limit:
                q = q.limit(limit)
            result = await q.execute()
        except QueryError as e:
            logger.error(f"Template listing failed: {e}")
            raise EmailTemplateError(f"テンプレート一覧取得失敗: {e.message}") from e

        return result.data or []

    async def get_template_by_id(self, template_id: str, tenant_id: str) -> Record | None:
        try:
            result = await (
                self._table()
                .select("*")
                .eq("id", template_id)
                .eq("tenant_id", tenant_id)
                .is_("deleted_at", None)
                .single()
                .execute()
            )
        except Exception as e:
            logger.warning(f"Template {template_id} lookup failed: {e}")
            return None

        return result.data

    async def get_templates_by_category(self, tenant_id: str, category: str) -> list[Record]:
        try:
            result = await (
                self._table()
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("category", category)
                .eq("is_active", True)
                .is_("deleted_at", None)
                .order("created_at", desc=True)
                .execute()
            )
        except QueryError as e:
            logger.error(f"Template lookup for category {category} failed: {e}")
            raise EmailTemplateError(f"カテゴリー別テンプレート取得失敗: {e.message}") from e

        return result.data or []

    async def get_default_template_by_category(self, tenant_id: str, category: str) -> Record | None:
        """Most used active template of a category, newest on ties."""
        try:
            result = await (
                self._table()
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("category", category)
                .eq("is_active", True)
                .is_("deleted_at", None)
                .order("usage_count", desc=True)
                .order("created_at", desc=True)
                .limit(1)
                .single()
                .execute()
            )
        except Exception as e:
            logger.warning(f"No default template for category {category}: {e}")
            return None

        return result.data

    async def create_template(
        self,
        tenant_id: str,
        template_data: dict[str, Any],
        created_by: str | None = None,
    ) -> Record:
        """Insert a new active template.

        Raises:
            EmailTemplateError: If the insert fails
        """
        values = {
            "tenant_id": tenant_id,
            "name": template_data.get("name"),
            "description": template_data.get("description"),
            "category": template_data.get("category"),
            "subject_template": template_data.get("subject_template"),
            "body_template_text": template_data.get("body_template_text"),
            "body_template_html": template_data.get("body_template_html"),
            "signature_template": template_data.get("signature_template"),
            "available_placeholders": template_data.get("available_placeholders") or [],
            "required_placeholders": template_data.get("required_placeholders") or [],
            "ai_summary_enabled": bool(template_data.get("ai_summary_enabled")),
            "is_active": True,
            "usage_count": 0,
            "created_by": created_by,
        }
        try:
            result = await self._table().insert(values).single().execute()
        except QueryError as e:
            logger.error(f"Template creation failed: {e}")
            raise EmailTemplateError(f"テンプレート作成失敗: {e.message}") from e

        return result.data

    async def update_template(self, tenant_id: str, template_id: str, changes: dict[str, Any]) -> Record:
        """Update only the provided editable fields.

        Raises:
            EmailTemplateError: If the update fails or the template does not exist
        """
        values = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
        values["updated_at"] = datetime.utcnow()
        try:
            result = await (
                self._table()
                .update(values)
                .eq("id", template_id)
                .eq("tenant_id", tenant_id)
                .single()
                .execute()
            )
        except QueryError as e:
            logger.error(f"Template {template_id} update failed: {e}")
            raise EmailTemplateError(f"テンプレート更新失敗: {e.message}") from e

        return result.data

    async def delete_template(self, template_id: str, tenant_id: str) -> bool:
        """Soft delete: deactivate and stamp ``deleted_at``."""
        now = datetime.utcnow()
        try:
            await (
                self._table()
                .update({"is_active": False, "deleted_at": now})
                .eq("id", template_id)
                .eq("tenant_id", tenant_id)
                .execute()
            )
        except QueryError as e:
            logger.error(f"Template {template_id} deletion failed: {e}")
            raise EmailTemplateError(f"テンプレート削除失敗: {e.message}") from e

        return True

    async def increment_usage_count(self, template_id: str, tenant_id: str) -> bool:
        try:
            q = self._table()
            await (
                q.update({"usage_count": q.column("usage_count") + 1, "last_used_at": datetime.utcnow()})
                .eq("id", template_id)
                .eq("tenant_id", tenant_id)
                .execute()
            )
        except QueryError as e:
            logger.error(f"Usage count update for template {template_id} failed: {e}")
            raise EmailTemplateError(f"使用回数更新失敗: {e.message}") from e

        return True

    async def search_templates(
        self,
        tenant_id: str,
        query: str | None = None,
        category: str | None = None,
        is_active: bool | None = None,
    ) -> list[Record]:
        try:
            q = self._table().select("*").eq("tenant_id", tenant_id).is_("deleted_at", None)
            if query:
                pattern = search_pattern(query)
                q = q.or_(f"name.ilike.{pattern},description.ilike.{pattern},category.ilike.{pattern}")
            if category:
                q = q.eq("category", category)
            if is_active is not None:
                q = q.eq("is_active", is_active)
            result = await q.order("created_at", desc=True).execute()
        except QueryError as e:
            logger.error(f"Template search failed: {e}")
            raise EmailTemplateError(f"テンプレート検索失敗: {e.message}") from e

        return result.data or []

    async def get_available_categories(self, tenant_id: str) -> list[str]:
        """Distinct categories of active templates; [] on error."""
        try:
            result = await (
                self._table()
                .select("category")
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .is_("deleted_at", None)
                .execute()
            )
        except Exception as e:
            logger.error(f"Category listing failed: {e}")
            return []

        return list(dict.fromkeys(row["category"] for row in result.data or [] if row.get("category")))
