"""Shared store plumbing: tenant context, precondition checks, notifications."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from ..client import BusinessClientManager, Record
from ..notifications import Notifier, is_auth_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

MISSING_CREDENTIALS = "認証情報が不足しています"
MISSING_TENANT = "テナント情報が見つかりません"
RELOGIN = "ログインし直してください"
SESSION_EXPIRED = "セッションが期限切れです。再ログインしてください"


class ValidationError(Exception):
    """Raised when a required field is missing from a submitted record."""

    def __init__(self, fields: list[str]) -> None:
        super().__init__(f"必須項目が入力されていません: {', '.join(fields)}")
        self.fields = fields


def require_fields(payload: Record, *fields: str) -> None:
    """Raise ValidationError for required fields that are absent or blank."""
    missing = [f for f in fields if payload.get(f) is None or str(payload.get(f)).strip() == ""]
    if missing:
        raise ValidationError(missing)


@dataclass
class TenantContext:
    """Tenant and user the current request acts for."""
    tenant_id: str | None
    user_id: str | None = None


class Store:
    """Base class for the per-entity stores.

    Holds ``items``, ``loading`` and ``error``. Every operation checks the
    tenant and the authenticated flag before touching the database and turns
    failures into notifications instead of raising.
    """

    def __init__(
        self,
        manager: BusinessClientManager,
        context: TenantContext,
        notifier: Notifier | None = None,
    ) -> None:
        self.manager = manager
        self.context = context
        self.notifier = notifier or Notifier()
        self.items: list[Record] = []
        self.loading = False
        self.error: str | None = None
        # Kind of the last failure: "auth" | "validation" | "remote"
        self.failure: str | None = None

    @property
    def tenant_id(self) -> str:
        return self.context.tenant_id or ""

    def _ready(self, *, require_user: bool = False, missing_message: str = MISSING_CREDENTIALS) -> bool:
        self.failure = None
        if not self.context.tenant_id or (require_user and not self.context.user_id):
            self.failure = "auth"
            self.notifier.error("エラー", missing_message)
            return False
        if not self.manager.is_authenticated():
            self.failure = "auth"
            self.notifier.error("認証エラー", RELOGIN)
            return False
        return True

    async def _run(self, fn: Callable[[], Awaitable[T]]) -> T:
        return await self.manager.execute_with_retry(fn)

    def _invalid(self, exc: ValidationError) -> None:
        self.failure = "validation"
        self.notifier.error("入力エラー", str(exc))

    def _notify_failure(self, exc: Exception, message: str) -> None:
        if is_auth_error(exc):
            self.failure = "auth"
            self.notifier.error("認証エラー", SESSION_EXPIRED)
        else:
            self.failure = "remote"
            self.notifier.error("エラー", message)

    def _load_failed(self, exc: Exception, message: str) -> None:
        """Reset the list after a failed load and notify."""
        logger.error(f"{type(self).__name__} load failed: {exc}", exc_info=True)
        self.error = str(exc) or message
        self.items = []
        self._notify_failure(exc, message)

    def _action_failed(self, exc: Exception, message: str) -> None:
        logger.error(f"{type(self).__name__}: {message}: {exc}", exc_info=True)
        self._notify_failure(exc, message)
