"""Project archives store: list, restore and purge archived projects."""
from __future__ import annotations

import logging
from datetime import datetime

from ..client import QueryError, Record, SessionExpiredError
from .base import Store

logger = logging.getLogger(__name__)


class ProjectArchivesStore(Store):

    def _table(self, name: str = "project_archives"):
        return self.manager.get_client().table(name)

    async def _get_archive(self, archive_id: str) -> Record:
        result = await (
            self._table()
            .select("*")
            .eq("id", archive_id)
            .eq("tenant_id", self.tenant_id)
            .single()
            .execute()
        )
        return result.data

    async def _delete_project(self, project_id: str) -> None:
        try:
            await self._table("projects").delete().eq("id", project_id).eq("tenant_id", self.tenant_id).execute()
        except SessionExpiredError:
            raise
        except QueryError as e:
            logger.warning(f"Could not delete archived project {project_id}: {e}")

    async def fetch(self) -> list[Record]:
        """Load archives, most recently archived first."""
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
                    .order("archived_at", desc=True)
                    .execute()
                )
                return result.data

            self.items = await self._run(query) or []
        except Exception as e:
            self._load_failed(e, "アーカイブの取得に失敗しました")
        finally:
            self.loading = False
        return self.items

    async def restore(self, archive_id: str) -> bool:
        """Reactivate the original project and drop the archive row."""
        if not self._ready(require_user=True):
            return False

        try:
            async def query():
                archive = await self._get_archive(archive_id)
                await (
                    self._table("projects")
                    .update({"is_active": True, "updated_at": datetime.utcnow()})
                    .eq("id", archive["original_project_id"])
                    .eq("tenant_id", self.tenant_id)
                    .execute()
                )
                await self._table().delete().eq("id", archive_id).eq("tenant_id", self.tenant_id).execute()

            await self._run(query)
        except Exception as e:
            self._action_failed(e, "案件の復元に失敗しました")
            return False

        self.notifier.success("成功", "案件が正常に復元されました")
        await self.fetch()
        return True

    async def delete_archive(self, archive_id: str) -> bool:
        """Hard-delete the archive and its original project."""
        if not self._ready():
            return False

        try:
            async def query():
                archive = await self._get_archive(archive_id)
                await self._delete_project(archive["original_project_id"])
                await self._table().delete().eq("id", archive_id).eq("tenant_id", self.tenant_id).execute()

            await self._run(query)
        except Exception as e:
            self._action_failed(e, "アーカイブの削除に失敗しました")
            return False

        self.notifier.success("成功", "アーカイブが正常に削除されました")
        await self.fetch()
        return True

    async def delete_batch_archives(self, archive_ids: list[str]) -> bool:
        """Hard-delete several archives; unreadable ones are skipped for project cleanup."""
        if not archive_ids:
            return False
        if not self._ready():
            return False

        try:
            async def query():
                for archive_id in archive_ids:
                    try:
                        archive = await self._get_archive(archive_id)
                    except SessionExpiredError:
                        raise
                    except QueryError as e:
                        logger.warning(f"Archive {archive_id} could not be read: {e}")
                        continue
                    await self._delete_project(archive["original_project_id"])

                await self._table().delete().in_("id", archive_ids).eq("tenant_id", self.tenant_id).execute()

            await self._run(query)
        except Exception as e:
            self._action_failed(e, "アーカイブの一括削除に失敗しました")
            return False

        self.notifier.success("成功", f"{len(archive_ids)}件のアーカイブが正常に削除されました")
        await self.fetch()
        return True
