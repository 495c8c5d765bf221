"""Document store abstraction.

Provides the storage interface the quiz workflow runs against: point reads,
filtered queries with an "in" predicate bounded in size, and an optimistic
read-then-write transaction primitive with conflict retry.

Documents are plain dictionaries addressed by ``(collection, doc_id)``. Every
stored document carries a version number; a missing document has version 0.
"""

import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from mockquiz.app.core.config import settings
from mockquiz.app.core.logging import get_logger
from mockquiz.app.core.retry import RetryPolicy, WriteConflict, with_retry
from mockquiz.app.exceptions import DocumentNotFoundError, TransactionConflictError

logger = get_logger(__name__)

T = TypeVar("T")

DocumentKey = tuple[str, str]

FILTER_OPS = ("==", "in")


@dataclass(frozen=True)
class FieldFilter:
    """A single top-level field predicate: ``field == value`` or ``field in values``."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter operator: {self.op!r}")
        if self.op == "in" and not isinstance(self.value, (list, tuple)):
            raise ValueError("'in' filters require a list of values")

    def matches(self, data: dict[str, Any]) -> bool:
        if self.field not in data:
            return False
        actual = data[self.field]
        if self.op == "in":
            return actual in self.value
        return actual == self.value


@dataclass
class DocumentSnapshot:
    """Point-in-time copy of a document."""

    collection: str
    id: str
    data: Optional[dict[str, Any]] = None
    version: int = 0

    @property
    def exists(self) -> bool:
        return self.data is not None

    @property
    def key(self) -> DocumentKey:
        return (self.collection, self.id)

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self.data) if self.data is not None else {}

    def get(self, field_name: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(field_name, default)


@dataclass
class Write:
    """A write staged by a transaction, applied only on commit."""

    kind: str  # set | update | increment
    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)
    merge: bool = False

    @property
    def key(self) -> DocumentKey:
        return (self.collection, self.doc_id)


def apply_write(current: Optional[dict[str, Any]], write: Write) -> dict[str, Any]:
    """Apply a staged write to the current document data.

    Merges are shallow: top-level fields in the write replace the stored ones.

    Raises:
        DocumentNotFoundError: If an update or increment targets a missing document.
    """
    if write.kind == "set" and not write.merge:
        return copy.deepcopy(write.data)
    if write.kind == "set":
        merged = copy.deepcopy(current) if current is not None else {}
        merged.update(copy.deepcopy(write.data))
        return merged

    if current is None:
        raise DocumentNotFoundError(write.collection, write.doc_id)

    updated = copy.deepcopy(current)
    if write.kind == "update":
        updated.update(copy.deepcopy(write.data))
    elif write.kind == "increment":
        for name, amount in write.data.items():
            updated[name] = (updated.get(name) or 0) + amount
    else:
        raise ValueError(f"Unknown write kind: {write.kind}")
    return updated


class Transaction(ABC):
    """Read-then-write unit of work.

    Reads record the version they observed; writes are staged in memory and
    applied by the store on commit only if none of the observed documents
    changed in the meantime. All reads must happen before the first write.
    """

    def __init__(self) -> None:
        self._reads: dict[DocumentKey, int] = {}
        self._writes: list[Write] = []

    @property
    def reads(self) -> dict[DocumentKey, int]:
        return self._reads

    @property
    def writes(self) -> list[Write]:
        return self._writes

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        if self._writes:
            raise RuntimeError("Transaction reads must be executed before all writes")
        snapshot = await self._read(collection, doc_id)
        self._reads[snapshot.key] = snapshot.version
        return snapshot

    def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        self._writes.append(Write("set", collection, doc_id, dict(data), merge))

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._writes.append(Write("update", collection, doc_id, dict(data)))

    def increment(
        self, collection: str, doc_id: str, field_name: str, amount: int = 1
    ) -> None:
        self._writes.append(Write("increment", collection, doc_id, {field_name: amount}))

    @abstractmethod
    async def _read(self, collection: str, doc_id: str) -> DocumentSnapshot:
        pass


TransactionFn = Callable[[Transaction], Awaitable[T]]


class DocumentStore(ABC):
    """Abstract base class for document store backends."""

    def __init__(self, in_limit: Optional[int] = None) -> None:
        self.in_limit = in_limit or settings.query_in_limit

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        """Read a single document. Missing documents yield a snapshot with ``exists == False``."""
        pass

    @abstractmethod
    async def _query(
        self, collection: str, filters: Sequence[FieldFilter]
    ) -> list[DocumentSnapshot]:
        pass

    @abstractmethod
    async def _run_once(self, fn: TransactionFn[T]) -> T:
        """Run ``fn`` once and commit its staged writes.

        Raises:
            WriteConflict: If a document read by the transaction changed before commit.
        """
        pass

    async def query(
        self, collection: str, filters: Sequence[FieldFilter] = ()
    ) -> list[DocumentSnapshot]:
        """Return all documents in ``collection`` matching every filter.

        Raises:
            ValueError: If an "in" filter carries more values than the store accepts.
        """
        for f in filters:
            if f.op == "in" and len(f.value) > self.in_limit:
                raise ValueError(
                    f"'in' filters support at most {self.in_limit} values, got {len(f.value)}"
                )
        return await self._query(collection, filters)

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Write a document outside of any caller transaction."""

        async def write(tx: Transaction) -> None:
            tx.set(collection, doc_id, data, merge=merge)

        await self.run_transaction(write)

    async def run_transaction(
        self, fn: TransactionFn[T], policy: Optional[RetryPolicy] = None
    ) -> T:
        """Run ``fn`` inside a transaction, retrying the whole body on conflict.

        ``fn`` receives the transaction handle and must keep its side effects
        limited to staged writes so that retries are safe.

        Raises:
            TransactionConflictError: If every attempt hit a write conflict.
        """
        retry_policy = policy or RetryPolicy.from_settings()

        @with_retry(retry_policy)
        async def attempt() -> T:
            return await self._run_once(fn)

        try:
            return await attempt()
        except WriteConflict as e:
            logger.warning(
                f"Transaction aborted after {retry_policy.max_attempts} attempts: {e}"
            )
            raise TransactionConflictError(attempts=retry_policy.max_attempts) from e

    def new_id(self) -> str:
        return uuid.uuid4().hex

    async def close(self) -> None:
        """Release backend resources."""
        pass
