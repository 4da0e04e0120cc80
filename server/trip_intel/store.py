"""Document-store interface with batched atomic writes, plus an in-memory implementation."""

from __future__ import annotations

import asyncio
import copy
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple

Document = Dict[str, Any]


@dataclass(frozen=True)
class DocumentRef:
    trip_id: str
    document_id: str

    @property
    def path(self) -> str:
        return f"trips/{self.trip_id}/documents/{self.document_id}"

    def child(self, collection: str, child_id: str) -> str:
        return f"{self.path}/{collection}/{child_id}"


class WriteBatch(Protocol):
    def set(self, path: str, data: Document) -> "WriteBatch": ...

    def update(self, path: str, data: Document) -> "WriteBatch": ...

    async def commit(self) -> None: ...


class DocumentStore(Protocol):
    def new_id(self) -> str: ...

    def batch(self) -> WriteBatch: ...

    async def get(self, path: str) -> Optional[Document]: ...

    async def update(self, path: str, data: Document) -> None: ...


class InMemoryWriteBatch:
    def __init__(self, store: "InMemoryDocumentStore") -> None:
        self._store = store
        self._ops: List[Tuple[str, str, Document]] = []
        self._committed = False

    def set(self, path: str, data: Document) -> "InMemoryWriteBatch":
        self._ops.append(("set", path, dict(data)))
        return self

    def update(self, path: str, data: Document) -> "InMemoryWriteBatch":
        self._ops.append(("update", path, dict(data)))
        return self

    @property
    def size(self) -> int:
        return len(self._ops)

    async def commit(self) -> None:
        if self._committed:
            raise RuntimeError("batch already committed")
        self._committed = True
        await self._store._commit(self._ops)


class InMemoryDocumentStore:
    """Path-addressed documents; a batch is applied to a staged copy and swapped in whole."""

    def __init__(self) -> None:
        self._docs: Dict[str, Document] = {}
        self._lock = asyncio.Lock()

    def new_id(self) -> str:
        return uuid.uuid4().hex[:20]

    def batch(self) -> InMemoryWriteBatch:
        return InMemoryWriteBatch(self)

    def seed(self, path: str, data: Document) -> None:
        self._docs[path] = dict(data)

    async def get(self, path: str) -> Optional[Document]:
        doc = self._docs.get(path)
        return copy.deepcopy(doc) if doc is not None else None

    async def update(self, path: str, data: Document) -> None:
        await self._commit([("update", path, dict(data))])

    def children(self, collection_path: str) -> Dict[str, Document]:
        """Direct children of a collection path, keyed by document id."""
        prefix = collection_path.rstrip("/") + "/"
        out: Dict[str, Document] = {}
        for path, doc in self._docs.items():
            if path.startswith(prefix):
                rest = path[len(prefix):]
                if "/" not in rest:
                    out[rest] = copy.deepcopy(doc)
        return out

    @staticmethod
    def _apply(docs: Dict[str, Document], op: str, path: str, data: Document) -> None:
        if op == "set":
            docs[path] = dict(data)
        elif op == "update":
            if path not in docs:
                raise KeyError(f"No document to update: {path}")
            docs[path] = {**docs[path], **data}
        else:
            raise ValueError(f"unknown batch op {op!r}")

    async def _commit(self, ops: List[Tuple[str, str, Document]]) -> None:
        async with self._lock:
            staged = dict(self._docs)
            for op, path, data in ops:
                self._apply(staged, op, path, data)
            self._docs = staged
