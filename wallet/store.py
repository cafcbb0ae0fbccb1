"""
Document store contract used by the wallet.

The store is collection scoped: point lookups by key, equality queries on a
single field, full scans, and an atomic WriteBatch that is the only way the
ledger changes more than one document. A batch either applies every write or
raises and applies none, which is what a managed document database gives
through its batched writes and server-side increments.
"""

import copy
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from .errors import DocumentExists, DocumentNotFound, PreconditionFailed

CUSTOMERS = "customers"
COURSES = "courses"
TRANSACTIONS = "user_transactions"
ENROLLMENTS = "customer_course_cross_ref"
COUNTERS = "counters"
TOPUP_REQUESTS = "topup_requests"
CUSTOMER_EMAILS = "customer_emails"
TEACHERS = "teachers"
CATEGORIES = "categories"


@dataclass(frozen=True)
class Snapshot:
    key: str
    data: dict


@dataclass
class Write:
    kind: str  # create | set | update | increment | delete
    collection: str
    key: str
    data: dict = field(default_factory=dict)
    field_name: Optional[str] = None
    delta: Decimal = Decimal("0")
    minimum: Optional[Decimal] = None


class WriteBatch:
    """Collects writes and hands them to the store as one unit."""

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._writes: list[Write] = []
        self._committed = False

    def create(self, collection: str, key: str, data: dict) -> "WriteBatch":
        """Create a document; the whole batch fails if it already exists."""
        self._writes.append(Write("create", collection, key, dict(data)))
        return self

    def set(self, collection: str, key: str, data: dict) -> "WriteBatch":
        self._writes.append(Write("set", collection, key, dict(data)))
        return self

    def update(self, collection: str, key: str, fields: dict) -> "WriteBatch":
        """Merge fields into an existing document; fails if it is missing."""
        self._writes.append(Write("update", collection, key, dict(fields)))
        return self

    def increment(
        self,
        collection: str,
        key: str,
        field_name: str,
        delta: Decimal,
        minimum: Optional[Decimal] = None,
    ) -> "WriteBatch":
        """Add delta to a numeric field of an existing document.

        When minimum is given the batch fails with PreconditionFailed if the
        resulting value would drop below it.
        """
        self._writes.append(
            Write("increment", collection, key, field_name=field_name, delta=delta, minimum=minimum)
        )
        return self

    def delete(self, collection: str, key: str) -> "WriteBatch":
        """Remove a document; deleting a missing document is a no-op."""
        self._writes.append(Write("delete", collection, key))
        return self

    def __len__(self) -> int:
        return len(self._writes)

    def commit(self) -> "CommitResult":
        """Apply the writes and return the documents as they were left."""
        if self._committed:
            raise RuntimeError("batch already committed")
        result = self._store.commit(list(self._writes))
        self._committed = True
        return result


class CommitResult(dict):
    """Post-commit state of every document a batch touched, keyed by (collection, key).

    Deleted documents map to None.
    """

    def document(self, collection: str, key: str) -> Optional[dict]:
        return self.get((collection, key))


class DocumentStore(ABC):
    @abstractmethod
    def get(self, collection: str, key: str) -> Optional[Snapshot]:
        ...

    @abstractmethod
    def find(self, collection: str, field_name: str, value: Any) -> list[Snapshot]:
        ...

    @abstractmethod
    def scan(self, collection: str) -> list[Snapshot]:
        ...

    @abstractmethod
    def commit(self, writes: list[Write]) -> CommitResult:
        ...

    @abstractmethod
    def next_sequence(self, name: str) -> int:
        """Atomically increment and return the named counter (first value is 1)."""

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def find_one(self, collection: str, field_name: str, value: Any) -> Optional[Snapshot]:
        matches = self.find(collection, field_name, value)
        return matches[0] if matches else None

    def set(self, collection: str, key: str, data: dict) -> None:
        self.batch().set(collection, key, data).commit()

    def update(self, collection: str, key: str, fields: dict) -> None:
        self.batch().update(collection, key, fields).commit()


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe store kept in process memory.

    Documents are deep-copied on the way in and out so callers never hold
    references into the store.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, dict]] = {}
        self._lock = threading.Lock()

    def _collection(self, name: str) -> dict[str, dict]:
        return self._collections.setdefault(name, {})

    def get(self, collection: str, key: str) -> Optional[Snapshot]:
        with self._lock:
            data = self._collection(collection).get(key)
            return Snapshot(key, copy.deepcopy(data)) if data is not None else None

    def find(self, collection: str, field_name: str, value: Any) -> list[Snapshot]:
        with self._lock:
            return [
                Snapshot(key, copy.deepcopy(data))
                for key, data in self._collection(collection).items()
                if data.get(field_name) == value
            ]

    def scan(self, collection: str) -> list[Snapshot]:
        with self._lock:
            return [
                Snapshot(key, copy.deepcopy(data))
                for key, data in self._collection(collection).items()
            ]

    def next_sequence(self, name: str) -> int:
        with self._lock:
            counter = self._collection(COUNTERS).setdefault(name, {"value": 0})
            counter["value"] += 1
            return counter["value"]

    def commit(self, writes: list[Write]) -> CommitResult:
        with self._lock:
            staged: dict[tuple[str, str], Optional[dict]] = {}

            def current(collection: str, key: str) -> Optional[dict]:
                if (collection, key) not in staged:
                    existing = self._collection(collection).get(key)
                    staged[(collection, key)] = copy.deepcopy(existing)
                return staged[(collection, key)]

            for write in writes:
                doc = current(write.collection, write.key)
                if write.kind == "create":
                    if doc is not None:
                        raise DocumentExists(write.collection, write.key)
                    staged[(write.collection, write.key)] = copy.deepcopy(write.data)
                elif write.kind == "set":
                    staged[(write.collection, write.key)] = copy.deepcopy(write.data)
                elif write.kind == "update":
                    if doc is None:
                        raise DocumentNotFound(write.collection, write.key)
                    doc.update(copy.deepcopy(write.data))
                elif write.kind == "increment":
                    if doc is None:
                        raise DocumentNotFound(write.collection, write.key)
                    value = Decimal(str(doc.get(write.field_name) or 0)) + write.delta
                    if write.minimum is not None and value < write.minimum:
                        raise PreconditionFailed(write.collection, write.key, write.field_name)
                    doc[write.field_name] = value
                elif write.kind == "delete":
                    staged[(write.collection, write.key)] = None
                else:
                    raise ValueError(f"Unknown write kind: {write.kind}")

            result = CommitResult()
            for (collection, key), data in staged.items():
                if data is None:
                    self._collection(collection).pop(key, None)
                else:
                    self._collection(collection)[key] = data
                result[(collection, key)] = copy.deepcopy(data)
            return result
