"""Database package for the mock quiz service.

This package provides:
- The document store interface and its in-memory and SQLAlchemy backends
- The ``documents`` table model and async session management
"""

from mockquiz.app.db.base import Base
from mockquiz.app.db.document_store import (
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    Transaction,
)
from mockquiz.app.db.memory_store import InMemoryDocumentStore
from mockquiz.app.db.models import Document
from mockquiz.app.db.sql_store import SqlDocumentStore

__all__ = [
    "Base",
    "Document",
    "DocumentSnapshot",
    "DocumentStore",
    "FieldFilter",
    "InMemoryDocumentStore",
    "SqlDocumentStore",
    "Transaction",
]
