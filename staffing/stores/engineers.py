"""Engineers store: own-company or partner engineers of a tenant."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from config.email_templates import COMPANY_TYPE_MAPPING

from ..client import BusinessClientManager, QueryError, Record
from ..notifications import Notifier
from ..pipelines.transforms import to_engineer_record
from .base import Store, TenantContext, ValidationError, require_fields

logger = logging.getLogger(__name__)


class EngineersStore(Store):
    def __init__(
        self,
        manager: BusinessClientManager,
        context: TenantContext,
        company_type: str = "own",
        notifier: Notifier | None = None,
    ) -> None:
        super().__init__(manager, context, notifier)
        if company_type not in COMPANY_TYPE_MAPPING:
            raise ValueError(f"company_type must be one of {list(COMPANY_TYPE_MAPPING)}")
        self.company_type = COMPANY_TYPE_MAPPING[company_type]

    def _table(self):
        return self.manager.get_client().table("engineers")

    async def fetch(self) -> list[Record]:
        """Load active engineers of this company type, newest first."""
        if not self._ready(missing_message="テナント情報が見つかりません"):
            return []

        self.loading = True
        self.error = None
        try:
            async def query():
                result = await (
                    self._table()
                    .select("*")
                    .eq("tenant_id", self.tenant_id)
                    .eq("company_type", self.company_type)
                    .eq("is_active", True)
                    .order("created_at", desc=True)
                    .execute()
                )
                return result.data

            self.items = await self._run(query) or []
            logger.info(f"Fetched {len(self.items)} engineers for tenant {self.tenant_id}")
        except Exception as e:
            self._load_failed(e, "人材データの取得に失敗しました")
        finally:
            self.loading = False
        return self.items

    async def create(self, payload: dict[str, Any]) -> Record | None:
        if not self._ready(missing_message="テナント情報が見つかりません"):
            return None

        try:
            require_fields(payload, "name")
        except ValidationError as e:
            self._invalid(e)
            return None

        values = {
            **to_engineer_record(payload),
            "company_type": self.company_type,
            "source": "manual",
            "tenant_id": self.tenant_id,
            "is_active": True,
        }
        try:
            async def query():
                result = await self._table().insert(values).single().execute()
                return result.data

            created = await self._run(query)
        except Exception as e:
            self._action_failed(e, "技術者情報の登録に失敗しました")
            return None

        await self.fetch()
        self.notifier.success("成功", "技術者情報を登録しました")
        return created

    async def update(self, engineer_id: str, payload: dict[str, Any]) -> bool:
        if not self._ready(missing_message="テナント情報が見つかりません"):
            return False

        if "name" in payload:
            try:
                require_fields(payload, "name")
            except ValidationError as e:
                self._invalid(e)
                return False

        values = {**to_engineer_record(payload, partial=True), "updated_at": datetime.utcnow()}
        try:
            async def query():
                result = await (
                    self._table()
                    .update(values)
                    .eq("id", engineer_id)
                    .eq("tenant_id", self.tenant_id)
                    .execute()
                )
                if not result.data:
                    raise QueryError(f"engineer {engineer_id} not found", code="PGRST116")

            await self._run(query)
        except Exception as e:
            self._action_failed(e, "技術者情報の更新に失敗しました")
            return False

        await self.fetch()
        self.notifier.success("成功", "技術者情報を更新しました")
        return True

    async def delete(self, engineer_id: str) -> bool:
        """Soft delete: the row stays but leaves every active listing."""
        if not self._ready(missing_message="テナント情報が見つかりません"):
            return False

        try:
            async def query():
                await (
                    self._table()
                    .update({"is_active": False, "updated_at": datetime.utcnow()})
                    .eq("id", engineer_id)
                    .eq("tenant_id", self.tenant_id)
                    .execute()
                )

            await self._run(query)
        except Exception as e:
            self._action_failed(e, "技術者の削除に失敗しました")
            return False

        await self.fetch()
        self.notifier.success("成功", "技術者を削除しました")
        return True

    async def permanently_delete(self, engineer_id: str) -> bool:
        if not self._ready(missing_message="テナント情報が見つかりません"):
            return False

        try:
            async def query():
                await self._table().delete().eq("id", engineer_id).eq("tenant_id", self.tenant_id).execute()

            await self._run(query)
        except Exception as e:
            self._action_failed(e, "技術者の完全削除に失敗しました")
            return False

        await self.fetch()
        self.notifier.success("成功", "技術者を完全に削除しました")
        return True

    async def batch_update(self, engineer_ids: list[str], changes: dict[str, Any]) -> bool:
        """Apply the same column values to several engineers."""
        if not engineer_ids:
            return False
        if not self._ready(missing_message="テナント情報が見つかりません"):
            return False

        values = {**changes, "updated_at": datetime.utcnow()}
        try:
            async def query():
                await (
                    self._table()
                    .update(values)
                    .in_("id", engineer_ids)
                    .eq("tenant_id", self.tenant_id)
                    .execute()
                )

            await self._run(query)
        except Exception as e:
            self._action_failed(e, "技術者情報の一括更新に失敗しました")
            return False

        await self.fetch()
        self.notifier.success("成功", f"{len(engineer_ids)}件の技術者情報を更新しました")
        return True
