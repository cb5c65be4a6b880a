"""Projects store: CRUD plus archiving into ``project_archives``."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi.encoders import jsonable_encoder

from ..client import QueryError, Record
from .base import Store, ValidationError, require_fields

logger = logging.getLogger(__name__)


class ProjectsStore(Store):

    def _table(self, name: str = "projects"):
        return self.manager.get_client().table(name)

    async def fetch(self) -> list[Record]:
        """Load active projects, newest first."""
        if not self._ready():
            return []

        self.loading = True
        self.error = None
        try:
            async def query():
                result = await (
                    self._table()
                    .select("*")
                    .eq("tenant_id", self.tenant_id)
                    .eq("is_active", True)
                    .order("created_at", desc=True)
                    .execute()
                )
                return result.data

            self.items = await self._run(query) or []
        except Exception as e:
            self._load_failed(e, "案件の取得に失敗しました")
        finally:
            self.loading = False
        return self.items

    async def create(self, payload: dict[str, Any]) -> Record | None:
        if not self._ready(require_user=True):
            return None

        try:
            require_fields(payload, "title")
        except ValidationError as e:
            self._invalid(e)
            return None

        values = {
            **payload,
            "tenant_id": self.tenant_id,
            "created_by": self.context.user_id,
            "is_active": True,
        }
        try:
            async def query():
                result = await self._table().insert(values).single().execute()
                return result.data

            created = await self._run(query)
        except Exception as e:
            self._action_failed(e, "案件の作成に失敗しました")
            return None

        self.notifier.success("成功", "案件が正常に作成されました")
        await self.fetch()
        return created

    async def update(self, project_id: str, changes: dict[str, Any]) -> bool:
        if not self._ready():
            return False

        if "title" in changes:
            try:
                require_fields(changes, "title")
            except ValidationError as e:
                self._invalid(e)
                return False

        values = {**changes, "updated_at": datetime.utcnow()}
        try:
            async def query():
                result = await (
                    self._table()
                    .update(values)
                    .eq("id", project_id)
                    .eq("tenant_id", self.tenant_id)
                    .single()
                    .execute()
                )
                return result.data

            await self._run(query)
        except Exception as e:
            self._action_failed(e, "案件の更新に失敗しました")
            return False

        self.notifier.success("成功", "案件が正常に更新されました")
        await self.fetch()
        return True

    async def delete(self, project_id: str) -> bool:
        """Soft delete."""
        if not self._ready():
            return False

        try:
            async def query():
                await (
                    self._table()
                    .update({"is_active": False, "updated_at": datetime.utcnow()})
                    .eq("id", project_id)
                    .eq("tenant_id", self.tenant_id)
                    .execute()
                )

            await self._run(query)
        except Exception as e:
            self._action_failed(e, "案件の削除に失敗しました")
            return False

        self.notifier.success("成功", "案件が正常に削除されました")
        await self.fetch()
        return True

    async def archive(self, project_id: str, reason: str | None = None) -> bool:
        """Snapshot the project into ``project_archives`` and deactivate it."""
        if not self._ready(require_user=True):
            return False

        try:
            async def query():
                fetched = await (
                    self._table()
                    .select("*")
                    .eq("id", project_id)
                    .eq("tenant_id", self.tenant_id)
                    .single()
                    .execute()
                )
                await self._table("project_archives").insert({
                    "original_project_id": project_id,
                    "project_data": jsonable_encoder(fetched.data),
                    "archive_reason": reason,
                    "archived_by": self.context.user_id,
                    "tenant_id": self.tenant_id,
                }).execute()
                updated = await (
                    self._table()
                    .update({"is_active": False, "updated_at": datetime.utcnow()})
                    .eq("id", project_id)
                    .eq("tenant_id", self.tenant_id)
                    .execute()
                )
                if not updated.data:
                    raise QueryError(f"project {project_id} vanished while archiving")

            await self._run(query)
        except Exception as e:
            self._action_failed(e, "案件のアーカイブに失敗しました")
            return False

        logger.info(f"Project {project_id} archived by {self.context.user_id}")
        self.notifier.success("成功", "案件が正常にアーカイブされました")
        await self.fetch()
        return True
