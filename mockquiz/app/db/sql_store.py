"""SQLAlchemy-backed document store.

Stores every document as a JSON row in the ``documents`` table. Transactions
are optimistic: reads record the row version and commits apply each write with
a conditional ``UPDATE ... WHERE version = :expected`` (or an ``INSERT`` for
new documents), so a concurrent commit is detected as a conflict and the whole
transaction body is retried. Lock contention reported by the database (SQLite
"database is locked", PostgreSQL serialization failures and deadlocks) is
treated as a conflict too; other driver errors mean the store is unavailable.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional, Sequence

from sqlalchemy import insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mockquiz.app.core.logging import get_logger
from mockquiz.app.core.retry import RetryPolicy, WriteConflict, with_retry
from mockquiz.app.db.async_session import get_async_session_maker
from mockquiz.app.db.document_store import (
    DocumentKey,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    T,
    Transaction,
    TransactionFn,
    Write,
    apply_write,
)
from mockquiz.app.db.models import Document
from mockquiz.app.exceptions import ConfigurationError

logger = get_logger(__name__)

# Serialization failure, deadlock, lock not available
CONTENTION_SQLSTATES = frozenset({"40001", "40P01", "55P03"})
CONTENTION_MESSAGES = ("database is locked", "database table is locked")


def is_contention_error(error: DBAPIError) -> bool:
    """Whether a driver error is transient lock contention rather than an outage."""
    orig = error.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in CONTENTION_SQLSTATES:
        return True
    message = str(orig).lower()
    return any(text in message for text in CONTENTION_MESSAGES)


def _json_field(name: str, sample: Any):
    column = Document.data[name]
    if isinstance(sample, bool):
        return column.as_boolean()
    if isinstance(sample, int):
        return column.as_integer()
    if isinstance(sample, float):
        return column.as_float()
    return column.as_string()


def _filter_clause(f: FieldFilter):
    if f.op == "in":
        sample = f.value[0] if f.value else ""
        return _json_field(f.field, sample).in_(list(f.value))
    return _json_field(f.field, f.value) == f.value


async def _load(session: AsyncSession, collection: str, doc_id: str) -> DocumentSnapshot:
    row = (
        await session.execute(
            select(Document.data, Document.version).where(
                Document.collection == collection, Document.doc_id == doc_id
            )
        )
    ).one_or_none()
    if row is None:
        return DocumentSnapshot(collection=collection, id=doc_id)
    return DocumentSnapshot(collection=collection, id=doc_id, data=row.data, version=row.version)


class _SqlTransaction(Transaction):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__()
        self._session = session

    async def _read(self, collection: str, doc_id: str) -> DocumentSnapshot:
        return await _load(self._session, collection, doc_id)


class SqlDocumentStore(DocumentStore):
    """Document store on top of an async SQLAlchemy session maker."""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        in_limit: Optional[int] = None,
    ) -> None:
        super().__init__(in_limit=in_limit)
        self._session_maker = session_maker or get_async_session_maker()

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_maker() as session:
                yield session
        except IntegrityError:
            raise
        except DBAPIError as e:
            if is_contention_error(e):
                logger.debug(f"Document store contention: {e.orig}")
                raise WriteConflict("lock contention") from e
            logger.error(f"Document store unavailable: {e}")
            raise ConfigurationError(f"Document store unavailable: {type(e).__name__}") from e
        except OSError as e:
            logger.error(f"Document store unavailable: {e}")
            raise ConfigurationError(f"Document store unavailable: {type(e).__name__}") from e

    async def _retry_read(self, read: Callable[[], Awaitable[T]]) -> T:
        """Run a standalone read, retrying while the database reports contention."""
        try:
            return await with_retry(RetryPolicy.from_settings())(read)()
        except WriteConflict as e:
            raise ConfigurationError("Document store is busy") from e

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        async def read() -> DocumentSnapshot:
            async with self._session() as session:
                return await _load(session, collection, doc_id)

        return await self._retry_read(read)

    async def _query(
        self, collection: str, filters: Sequence[FieldFilter]
    ) -> list[DocumentSnapshot]:
        stmt = (
            select(Document.doc_id, Document.data, Document.version)
            .where(Document.collection == collection, *[_filter_clause(f) for f in filters])
            .order_by(Document.doc_id)
        )

        async def read() -> list[Any]:
            async with self._session() as session:
                return list((await session.execute(stmt)).all())

        rows = await self._retry_read(read)
        return [
            DocumentSnapshot(collection=collection, id=row.doc_id, data=row.data, version=row.version)
            for row in rows
        ]

    async def _run_once(self, fn: TransactionFn[T]) -> T:
        async with self._session() as session:
            tx = _SqlTransaction(session)
            try:
                result = await fn(tx)
                await self._commit(session, tx)
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise WriteConflict("concurrent insert") from e
            except Exception:
                await session.rollback()
                raise
            return result

    async def _commit(self, session: AsyncSession, tx: Transaction) -> None:
        grouped: dict[DocumentKey, list[Write]] = {}
        for write in tx.writes:
            grouped.setdefault(write.key, []).append(write)

        # Documents only read must still be unchanged at commit time
        for key, version in tx.reads.items():
            if key in grouped:
                continue
            current = await _load(session, *key)
            if current.version != version:
                raise WriteConflict(f"{key[0]}/{key[1]}")

        now = datetime.now(timezone.utc)
        for key in sorted(grouped):
            current = await _load(session, *key)
            if key in tx.reads and current.version != tx.reads[key]:
                raise WriteConflict(f"{key[0]}/{key[1]}")

            data = current.data
            for write in grouped[key]:
                data = apply_write(data, write)

            if current.exists:
                result = await session.execute(
                    update(Document)
                    .where(
                        Document.collection == key[0],
                        Document.doc_id == key[1],
                        Document.version == current.version,
                    )
                    .values(data=data, version=current.version + 1, updated_at=now)
                )
                if result.rowcount != 1:
                    raise WriteConflict(f"{key[0]}/{key[1]}")
            else:
                await session.execute(
                    insert(Document).values(
                        collection=key[0],
                        doc_id=key[1],
                        data=data,
                        version=1,
                        updated_at=now,
                    )
                )
