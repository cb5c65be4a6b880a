"""E-mail templates store, a thin stateful layer over EmailTemplateService."""
from __future__ import annotations

import logging
from typing import Any

from ..client import BusinessClientManager, Record
from ..notifications import Notifier
from ..services.email_template_service import EmailTemplateService
from .base import Store, TenantContext, ValidationError, require_fields

logger = logging.getLogger(__name__)

MISSING_TENANT_ID = "テナントIDが設定されていません"


class EmailTemplatesStore(Store):
    def __init__(
        self,
        manager: BusinessClientManager,
        context: TenantContext,
        category: str | None = None,
        is_active: bool | None = True,
        notifier: Notifier | None = None,
    ) -> None:
        super().__init__(manager, context, notifier)
        self.category = category
        self.is_active = is_active
        self.service = EmailTemplateService(manager)

    def _tenant_ready(self) -> bool:
        self.failure = None
        if not self.context.tenant_id:
            self.failure = "auth"
            self.notifier.error("エラー", MISSING_TENANT_ID)
            return False
        return True

    async def refresh(self) -> list[Record]:
        """Reload the template list for the configured category/active filter."""
        self.failure = None
        if not self.context.tenant_id:
            self.failure = "auth"
            self.error = MISSING_TENANT_ID
            self.items = []
            return self.items

        self.loading = True
        self.error = None
        try:
            self.items = await self.service.get_templates(
                self.tenant_id,
                category=self.category,
                is_active=self.is_active,
            )
        except Exception as e:
            self._load_failed(e, "テンプレートの取得に失敗しました")
        finally:
            self.loading = False
        return self.items

    async def get_template_by_id(self, template_id: str) -> Record | None:
        if not self._tenant_ready():
            return None
        return await self.service.get_template_by_id(template_id, self.tenant_id)

    async def get_templates_by_category(self, category: str) -> list[Record]:
        if not self._tenant_ready():
            return []
        try:
            return await self.service.get_templates_by_category(self.tenant_id, category)
        except Exception as e:
            self._action_failed(e, "カテゴリー別テンプレートの取得に失敗しました")
            return []

    async def get_default_template_by_category(self, category: str) -> Record | None:
        if not self._tenant_ready():
            return None
        return await self.service.get_default_template_by_category(self.tenant_id, category)

    async def create(self, payload: dict[str, Any]) -> Record | None:
        if not self._tenant_ready():
            return None

        try:
            require_fields(payload, "name", "subject_template", "body_template_text")
        except ValidationError as e:
            self._invalid(e)
            return None

        try:
            created = await self.service.create_template(self.tenant_id, payload, self.context.user_id)
        except Exception as e:
            self._action_failed(e, "テンプレートの作成に失敗しました")
            return None

        self.notifier.success("成功", "テンプレートを作成しました")
        await self.refresh()
        return created

    async def update(self, template_id: str, changes: dict[str, Any]) -> Record | None:
        if not self._tenant_ready():
            return None

        present = [f for f in ("name", "subject_template", "body_template_text") if f in changes]
        if present:
            try:
                require_fields(changes, *present)
            except ValidationError as e:
                self._invalid(e)
                return None

        try:
            updated = await self.service.update_template(self.tenant_id, template_id, changes)
        except Exception as e:
            self._action_failed(e, "テンプレートの更新に失敗しました")
            return None

        self.notifier.success("成功", "テンプレートを更新しました")
        await self.refresh()
        return updated

    async def delete(self, template_id: str) -> bool:
        if not self._tenant_ready():
            return False

        try:
            deleted = await self.service.delete_template(template_id, self.tenant_id)
        except Exception as e:
            self._action_failed(e, "テンプレートの削除に失敗しました")
            return False

        if deleted:
            self.notifier.success("成功", "テンプレートを削除しました")
            await self.refresh()
        return deleted

    async def increment_usage_count(self, template_id: str) -> bool:
        """Bump the usage counter; failures are logged only."""
        if not self.context.tenant_id:
            return False
        try:
            return await self.service.increment_usage_count(template_id, self.tenant_id)
        except Exception as e:
            logger.error(f"Usage count update failed for {template_id}: {e}")
            return False

    async def search(self, query: str, category: str | None = None) -> list[Record]:
        if not self._tenant_ready():
            return []
        try:
            return await self.service.search_templates(
                self.tenant_id,
                query=query,
                category=category,
                is_active=True,
            )
        except Exception as e:
            self._action_failed(e, "テンプレートの検索に失敗しました")
            return []

    async def get_available_categories(self) -> list[str]:
        if not self._tenant_ready():
            return []
        return await self.service.get_available_categories(self.tenant_id)
