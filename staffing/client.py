"""Table-query client and the business client manager.

``BusinessClient.table(name)`` returns a ``TableQuery`` whose filter chain
mirrors the REST query grammar of the hosted database (``eq``, ``in``,
``overlaps``, ``ilike``, ``or``, ordering, limit, single). Queries are
compiled to SQLAlchemy Core statements; callers never write SQL.

``BusinessClientManager`` is the process-wide holder of the configured
client handle and the "authenticated" flag.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from sqlalchemy import String, Table, cast, delete, false, func, insert, or_, select, true, update
from sqlalchemy.dialects.postgresql import array as pg_array
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_none

from .models import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")
Record = dict[str, Any]
TokenRefresher = Callable[[str], Awaitable[str | None]]
TokenVerifier = Callable[[str], Awaitable[bool]]


class QueryError(Exception):
    """Raised when a table query fails."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class SessionExpiredError(QueryError):
    """Raised when the access token is missing or rejected."""

    def __init__(self, message: str = "JWT expired or missing") -> None:
        super().__init__(message, code="PGRST301")


class AuthenticationError(Exception):
    """Raised when the session cannot be (re)established."""
    pass


class ClientNotInitializedError(AuthenticationError):
    """Raised when the business client is used before authentication."""
    pass


@dataclass
class QueryResult:
    """Rows returned by ``TableQuery.execute``."""
    data: list[Record] | Record | None
    count: int


class TableQuery:
    """Fluent filter chain over a single table."""

    def __init__(self, client: BusinessClient, table: Table) -> None:
        self._client = client
        self._table = table
        self._action = "select"
        self._columns: list[str] | None = None
        self._values: list[Record] = []
        self._filters: list[Any] = []
        self._order_by: list[Any] = []
        self._limit: int | None = None
        self._single = False
        self._maybe_single = False

    # -- columns -----------------------------------------------------------

    def column(self, name: str):
        """Return the SQLAlchemy column for ``name``."""
        try:
            return self._table.c[name]
        except KeyError as e:
            raise QueryError(
                f"column {self._table.name}.{name} does not exist",
                code="42703",
            ) from e

    def _check_values(self, values: Record) -> Record:
        unknown = [k for k in values if k not in self._table.c]
        if unknown:
            raise QueryError(
                f"Could not find the '{unknown[0]}' column of '{self._table.name}'",
                code="PGRST204",
            )
        return dict(values)

    # -- actions -----------------------------------------------------------

    def select(self, columns: str = "*") -> TableQuery:
        self._action = "select"
        if columns.strip() != "*":
            self._columns = [c.strip() for c in columns.split(",") if c.strip()]
            for name in self._columns:
                self.column(name)
        return self

    def insert(self, values: Record | list[Record]) -> TableQuery:
        self._action = "insert"
        rows = values if isinstance(values, list) else [values]
        self._values = [self._check_values(row) for row in rows]
        return self

    def update(self, values: Record) -> TableQuery:
        self._action = "update"
        self._values = [self._check_values(values)]
        return self

    def delete(self) -> TableQuery:
        self._action = "delete"
        return self

    # -- filters -----------------------------------------------------------

    def eq(self, column: str, value: Any) -> TableQuery:
        self._filters.append(self.column(column) == value)
        return self

    def neq(self, column: str, value: Any) -> TableQuery:
        self._filters.append(self.column(column) != value)
        return self

    def in_(self, column: str, values: Iterable[Any]) -> TableQuery:
        self._filters.append(self.column(column).in_(list(values)))
        return self

    def is_(self, column: str, value: Any) -> TableQuery:
        self._filters.append(self._is_clause(column, value))
        return self

    def not_is(self, column: str, value: Any) -> TableQuery:
        self._filters.append(~self._is_clause(column, value))
        return self

    def ilike(self, column: str, pattern: str) -> TableQuery:
        self._filters.append(self.column(column).ilike(pattern))
        return self

    def overlaps(self, column: str, values: Iterable[str]) -> TableQuery:
        self._filters.append(self._overlaps_clause(column, list(values)))
        return self

    def or_(self, filters: str) -> TableQuery:
        """Add an OR group written in the REST grammar.

        Example: ``"title.ilike.%java%,client_company.eq.ACME"``.
        """
        clauses = [self._parse_condition(part) for part in filters.split(",") if part.strip()]
        if clauses:
            self._filters.append(or_(*clauses))
        return self

    def _is_clause(self, column: str, value: Any):
        col = self.column(column)
        if value is None or value == "null":
            return col.is_(None)
        if value is True or value == "true":
            return col.is_(true())
        if value is False or value == "false":
            return col.is_(false())
        raise QueryError(f"invalid 'is' value: {value!r}", code="PGRST100")

    def _overlaps_clause(self, column: str, values: list[str]):
        col = self.column(column)
        if self._client.dialect_name == "postgresql":
            return col.op("&&")(pg_array(values))
        # JSON-encoded lists elsewhere: exact, case-sensitive match of each element as a JSON string literal
        return or_(*[func.instr(cast(col, String), json.dumps(v)) > 0 for v in values])

    def _parse_condition(self, expression: str):
        try:
            column, operator, value = expression.strip().split(".", 2)
        except ValueError as e:
            raise QueryError(f"failed to parse filter ({expression})", code="PGRST100") from e

        col = self.column(column)
        if operator in ("ilike", "like"):
            pattern = value.replace("*", "%")
            return col.ilike(pattern) if operator == "ilike" else col.like(pattern)
        if operator == "eq":
            return col == value
        if operator == "neq":
            return col != value
        if operator == "is":
            return self._is_clause(column, value)
        if operator in ("gt", "gte", "lt", "lte"):
            return {
                "gt": col > value,
                "gte": col >= value,
                "lt": col < value,
                "lte": col <= value,
            }[operator]
        raise QueryError(f"unsupported operator '{operator}'", code="PGRST100")

    # -- modifiers ---------------------------------------------------------

    def order(self, column: str, *, desc: bool = False) -> TableQuery:
        col = self.column(column)
        self._order_by.append(col.desc() if desc else col.asc())
        return self

    def limit(self, count: int) -> TableQuery:
        self._limit = count
        return self

    def single(self) -> TableQuery:
        """Expect exactly one row."""
        self._single = True
        return self

    def maybe_single(self) -> TableQuery:
        """Expect zero or one row."""
        self._maybe_single = True
        return self

    # -- execution ---------------------------------------------------------

    def _statements(self) -> list[Any]:
        table = self._table
        if self._action == "select":
            columns = [table.c[c] for c in self._columns] if self._columns else list(table.c)
            stmt = select(*columns).where(*self._filters).order_by(*self._order_by)
            if self._limit is not None:
                stmt = stmt.limit(self._limit)
            return [stmt]
        if self._action == "insert":
            return [insert(table).values(**row).returning(*table.c) for row in self._values]
        if self._action == "update":
            return [update(table).where(*self._filters).values(**self._values[0]).returning(*table.c)]
        return [delete(table).where(*self._filters).returning(*table.c)]

    async def execute(self) -> QueryResult:
        """Run the query and return plain-dict rows."""
        self._client.ensure_token()

        rows: list[Record] = []
        try:
            async with self._client.session() as session:
                for stmt in self._statements():
                    result = await session.execute(stmt)
                    rows.extend(dict(row._mapping) for row in result.all())
                if self._action != "select":
                    await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"{self._action} on {self._table.name} failed: {e}")
            raise QueryError(f"{self._action} on {self._table.name} failed: {e}") from e

        if self._single or self._maybe_single:
            if len(rows) > 1 or (self._single and not rows):
                raise QueryError(
                    f"JSON object requested, {len(rows)} rows returned",
                    code="PGRST116",
                )
            return QueryResult(data=rows[0] if rows else None, count=len(rows))

        return QueryResult(data=rows, count=len(rows))


class BusinessClient:
    """Handle on the business database, carrying the caller's access token."""

    def __init__(self, engine: AsyncEngine, access_token: str = "") -> None:
        self.engine = engine
        self.access_token = access_token
        self._session_factory = async_sessionmaker(
            bind=engine,
            expire_on_commit=False,
            class_=AsyncSession,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def session(self) -> AsyncSession:
        return self._session_factory()

    def set_auth(self, access_token: str) -> None:
        self.access_token = access_token

    def ensure_token(self) -> None:
        if not self.access_token:
            raise SessionExpiredError()

    def table(self, name: str) -> TableQuery:
        try:
            table = Base.metadata.tables[name]
        except KeyError as e:
            raise QueryError(f"relation \"{name}\" does not exist", code="42P01") from e
        return TableQuery(self, table)


class BusinessClientManager:
    """Holds the configured client and whether the session is authenticated.

    Use ``get_instance()`` for the process-wide manager; tests construct
    their own.

    The database itself does not check tokens. Without a ``token_verifier``
    any non-empty token that passes the probe query counts as authenticated;
    with one, the verifier must accept the token (or a refreshed one) first.
    """

    _instance: BusinessClientManager | None = None

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        *,
        token_refresher: TokenRefresher | None = None,
        token_verifier: TokenVerifier | None = None,
    ) -> None:
        self._client = BusinessClient(engine) if engine is not None else None
        self._is_initialized = False
        self._refresh_token: str | None = None
        self.token_refresher = token_refresher
        self.token_verifier = token_verifier

    @classmethod
    def get_instance(cls) -> BusinessClientManager:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def configure(
        self,
        engine: AsyncEngine,
        *,
        token_refresher: TokenRefresher | None = None,
        token_verifier: TokenVerifier | None = None,
    ) -> None:
        """Bind the manager to a database engine."""
        self._client = BusinessClient(engine)
        self._is_initialized = False
        if token_refresher is not None:
            self.token_refresher = token_refresher
        if token_verifier is not None:
            self.token_verifier = token_verifier

    def _require_client(self) -> BusinessClient:
        if self._client is None:
            raise ClientNotInitializedError("Business client is not configured")
        return self._client

    async def initialize(self, access_token: str | None, refresh_token: str | None = None) -> bool:
        """Restore a session from stored tokens."""
        if self._is_initialized:
            return True

        if access_token:
            try:
                if await self._verify_and_set_token(access_token, refresh_token):
                    self._is_initialized = True
                    return True
            except Exception as e:
                logger.error(f"Token initialization failed: {e}")

        self.clear_auth()
        return False

    async def set_token(self, access_token: str, refresh_token: str | None = None) -> bool:
        """Set and verify a new access token."""
        try:
            if not await self._verify_and_set_token(access_token, refresh_token):
                raise AuthenticationError("トークンが無効です")
            self._is_initialized = True
            return True
        except Exception as e:
            logger.error(f"Setting token failed: {e}")
            self.clear_auth()
            return False

    async def _verify_and_set_token(self, access_token: str, refresh_token: str | None) -> bool:
        client = self._require_client()
        client.set_auth(access_token)
        self._refresh_token = refresh_token

        try:
            await client.table("projects").select("id").limit(1).execute()
        except QueryError as e:
            logger.warning(f"Token probe failed: {e}")
            return bool(refresh_token) and await self._refresh_session()

        if not await self._token_accepted(access_token):
            logger.warning("Access token rejected by the verifier")
            return bool(refresh_token) and await self._refresh_session()
        return True

    async def _token_accepted(self, token: str) -> bool:
        if self.token_verifier is None:
            return True
        try:
            return bool(await self.token_verifier(token))
        except Exception as e:
            logger.error(f"Token verification failed: {e}")
            return False

    async def _refresh_session(self) -> bool:
        if self.token_refresher is None or not self._refresh_token:
            return False

        try:
            new_token = await self.token_refresher(self._refresh_token)
        except Exception as e:
            logger.error(f"Token refresh failed: {e}", exc_info=True)
            return False

        if not new_token or not await self._token_accepted(new_token):
            return False

        self._require_client().set_auth(new_token)
        logger.info("Access token refreshed")
        return True

    def clear_auth(self) -> None:
        if self._client is not None:
            self._client.set_auth("")
        self._refresh_token = None
        self._is_initialized = False

    def get_client(self) -> BusinessClient:
        """Return the authenticated client.

        Raises:
            ClientNotInitializedError: If no session is established
        """
        if not self._is_initialized:
            raise ClientNotInitializedError(
                "認証エラー: ビジネスクライアントが初期化されていません。先にログインしてください。"
            )
        return self._require_client()

    def is_authenticated(self) -> bool:
        return self._is_initialized

    async def execute_with_retry(
        self,
        query_fn: Callable[[], Awaitable[T]],
        max_retries: int = 1,
    ) -> T:
        """Run ``query_fn``, refreshing the token once on an expired session.

        Without a configured token refresher this is a plain pass-through.
        Errors other than an expired session are never retried.
        """
        if self.token_refresher is None:
            return await query_fn()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_retries + 1),
            retry=retry_if_exception_type(SessionExpiredError),
            wait=wait_none(),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    try:
                        return await query_fn()
                    except SessionExpiredError as e:
                        if not await self._refresh_session():
                            raise AuthenticationError("認証エラー: ログインし直してください") from e
                        raise
        except SessionExpiredError as e:
            raise AuthenticationError("認証エラー: ログインし直してください") from e
        raise AuthenticationError("認証エラー: ログインし直してください")


def get_business_client_manager() -> BusinessClientManager:
    """FastAPI dependency for the process-wide manager."""
    return BusinessClientManager.get_instance()
