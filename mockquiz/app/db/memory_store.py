"""In-memory document store.

Process-local backend used for tests and single-instance development. Data is
lost when the application restarts.
"""

import asyncio
import copy
from typing import Any, Optional, Sequence

from mockquiz.app.core.retry import WriteConflict
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


class _MemoryTransaction(Transaction):
    def __init__(self, store: "InMemoryDocumentStore") -> None:
        super().__init__()
        self._store = store

    async def _read(self, collection: str, doc_id: str) -> DocumentSnapshot:
        # Yield so that concurrent transactions interleave like network calls
        await asyncio.sleep(0)
        return self._store._snapshot((collection, doc_id))


class InMemoryDocumentStore(DocumentStore):
    """Versioned dictionary store with optimistic transactions.

    Commits validate every version a transaction read and apply its staged
    writes under a single lock, so a commit is all-or-nothing.
    """

    def __init__(self, in_limit: Optional[int] = None) -> None:
        super().__init__(in_limit=in_limit)
        self._docs: dict[DocumentKey, tuple[dict[str, Any], int]] = {}
        self._lock = asyncio.Lock()

    def _snapshot(self, key: DocumentKey) -> DocumentSnapshot:
        entry = self._docs.get(key)
        if entry is None:
            return DocumentSnapshot(collection=key[0], id=key[1])
        data, version = entry
        return DocumentSnapshot(
            collection=key[0], id=key[1], data=copy.deepcopy(data), version=version
        )

    def _version(self, key: DocumentKey) -> int:
        entry = self._docs.get(key)
        return entry[1] if entry is not None else 0

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        await asyncio.sleep(0)
        return self._snapshot((collection, doc_id))

    async def _query(
        self, collection: str, filters: Sequence[FieldFilter]
    ) -> list[DocumentSnapshot]:
        await asyncio.sleep(0)
        return [
            self._snapshot(key)
            for key in sorted(self._docs)
            if key[0] == collection
            and all(f.matches(self._docs[key][0]) for f in filters)
        ]

    def _apply(self, writes: list[Write]) -> None:
        staged: dict[DocumentKey, tuple[dict[str, Any], int]] = {}
        for write in writes:
            data, version = staged.get(write.key) or self._docs.get(write.key) or (None, 0)
            staged[write.key] = (apply_write(data, write), version + 1)
        self._docs.update(staged)

    async def _run_once(self, fn: TransactionFn[T]) -> T:
        tx = _MemoryTransaction(self)
        result = await fn(tx)
        async with self._lock:
            for key, version in tx.reads.items():
                if self._version(key) != version:
                    raise WriteConflict(f"{key[0]}/{key[1]}")
            self._apply(tx.writes)
        return result

    async def clear(self) -> None:
        async with self._lock:
            self._docs.clear()
