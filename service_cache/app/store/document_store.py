"""
Document store contract consumed by the cache layer, and an in-memory
implementation of it.
"""

import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from shared.errors import SourceFetchError
from shared.logging import get_logger


Document = Dict[str, Any]
Filter = Union[Dict[str, Any], Callable[[Document], bool]]
SortSpec = Sequence[Tuple[str, int]]

ASCENDING = 1
DESCENDING = -1


class MutationKind(str, Enum):
    """Kind of change applied to a collection."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class MutationEvent:
    """Notification emitted after a successful write."""
    collection: str
    operation: MutationKind
    document_id: Optional[str] = None


MutationCallback = Callable[[MutationEvent], Awaitable[None]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStore(ABC):
    """What the cache layer needs from the data-access layer."""

    @abstractmethod
    async def find(
        self,
        collection: str,
        filter: Optional[Filter] = None,
        *,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Return matching documents."""

    @abstractmethod
    async def count(self, collection: str, filter: Optional[Filter] = None) -> int:
        """Count matching documents."""

    @abstractmethod
    async def latest_modified(self, collection: str, filter: Optional[Filter] = None) -> Optional[datetime]:
        """Most recent ``updated_at`` among matching documents, None if there are none."""

    @abstractmethod
    def subscribe(self, collection: str, callback: MutationCallback) -> None:
        """Call ``callback`` after every successful create/update/delete on ``collection``."""


def matches(document: Document, filter: Optional[Filter]) -> bool:
    """Evaluate a filter against one document.

    Dict filters compare field by field: a callable value is used as a
    predicate on the field, a list field matches when it contains the
    value, anything else is compared for equality.
    """
    if filter is None:
        return True
    if callable(filter):
        return bool(filter(document))

    for field_name, expected in filter.items():
        actual = document.get(field_name)
        if callable(expected):
            if not expected(actual):
                return False
        elif isinstance(actual, list) and not isinstance(expected, list):
            if expected not in actual:
                return False
        elif actual != expected:
            return False

    return True


def sort_documents(documents: List[Document], sort: Optional[SortSpec]) -> List[Document]:
    """Stable multi-key sort; documents missing a field sort last."""
    if not sort:
        return documents

    ordered = list(documents)
    for field_name, direction in reversed(list(sort)):
        present = [doc for doc in ordered if doc.get(field_name) is not None]
        missing = [doc for doc in ordered if doc.get(field_name) is None]
        present.sort(key=lambda doc: doc[field_name], reverse=direction == DESCENDING)
        ordered = present + missing

    return ordered


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed document store with mutation notifications.

    Writes stamp ``created_at``/``updated_at`` and then notify subscribers
    of the collection. A failing subscriber is logged and does not undo or
    fail the write. Reads while disconnected raise ``SourceFetchError``.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.logger = get_logger("cache.store")
        self._clock = clock
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._subscribers: Dict[str, List[MutationCallback]] = {}
        self.is_connected = True

    async def connect(self) -> None:
        if self.is_connected:
            self.logger.debug("Document store already connected")
            return
        self.is_connected = True
        self.logger.info("Document store connected")

    async def disconnect(self) -> None:
        self.is_connected = False
        self.logger.info("Document store disconnected")

    def _collection(self, collection: str) -> Dict[str, Document]:
        if not self.is_connected:
            raise SourceFetchError(collection, "document store is not connected")
        return self._collections.setdefault(collection, {})

    async def find(
        self,
        collection: str,
        filter: Optional[Filter] = None,
        *,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Document]:
        documents = [doc for doc in self._collection(collection).values() if matches(doc, filter)]
        documents = sort_documents(documents, sort)
        end = skip + limit if limit is not None else None
        return copy.deepcopy(documents[skip:end])

    async def find_one(self, collection: str, document_id: str) -> Optional[Document]:
        document = self._collection(collection).get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def count(self, collection: str, filter: Optional[Filter] = None) -> int:
        return sum(1 for doc in self._collection(collection).values() if matches(doc, filter))

    async def latest_modified(self, collection: str, filter: Optional[Filter] = None) -> Optional[datetime]:
        timestamps = [
            doc["updated_at"]
            for doc in self._collection(collection).values()
            if matches(doc, filter) and doc.get("updated_at") is not None
        ]
        return max(timestamps) if timestamps else None

    def subscribe(self, collection: str, callback: MutationCallback) -> None:
        self._subscribers.setdefault(collection, []).append(callback)
        self.logger.debug("Registered mutation subscriber", collection=collection)

    async def insert(self, collection: str, document: Document) -> Document:
        """Insert ``document``; an ``id`` is generated when absent."""
        now = self._clock()
        stored = copy.deepcopy(document)
        stored.setdefault("id", uuid.uuid4().hex)
        stored["created_at"] = now
        stored["updated_at"] = now

        self._collection(collection)[stored["id"]] = stored
        await self._notify(MutationEvent(collection, MutationKind.CREATE, stored["id"]))
        return copy.deepcopy(stored)

    async def update(self, collection: str, document_id: str, changes: Document) -> Optional[Document]:
        """Apply ``changes`` to one document; returns None when it does not exist."""
        documents = self._collection(collection)
        current = documents.get(document_id)
        if current is None:
            return None

        current.update(copy.deepcopy(changes))
        current["id"] = document_id
        current["updated_at"] = self._clock()

        await self._notify(MutationEvent(collection, MutationKind.UPDATE, document_id))
        return copy.deepcopy(current)

    async def delete(self, collection: str, document_id: str) -> bool:
        if self._collection(collection).pop(document_id, None) is None:
            return False

        await self._notify(MutationEvent(collection, MutationKind.DELETE, document_id))
        return True

    async def _notify(self, event: MutationEvent) -> None:
        callbacks = list(self._subscribers.get(event.collection, []))
        if not callbacks:
            return

        results = await asyncio.gather(*(callback(event) for callback in callbacks), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                self.logger.error(
                    "Mutation subscriber failed",
                    collection=event.collection,
                    operation=event.operation.value,
                    error=str(result)
                )
