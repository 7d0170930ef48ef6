from typing import Dict, List, Any, Optional, Tuple
from abc import ABC, abstractmethod

from axon.domain.models import VectorHit, VectorPoint, VectorSearchFilter

# (field, direction) pairs, direction 1 ascending / -1 descending
SortSpec = List[Tuple[str, int]]


class DocumentCollection(ABC):
    """A named collection of JSON-like documents.

    Filters support equality, ``$in``, ``$gte`` / ``$lte`` and dotted paths
    into nested documents. Updates support ``$set`` and ``$inc``.
    """

    @abstractmethod
    async def insert_one(self, document: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def insert_many(self, documents: List[Dict[str, Any]]) -> None:
        ...

    @abstractmethod
    async def find_one(
        self,
        filter: Dict[str, Any],
        sort: Optional[SortSpec] = None
    ) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def find(
        self,
        filter: Dict[str, Any],
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def update_one(self, filter: Dict[str, Any], update: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply ``update`` to the first match and return the updated document"""

    @abstractmethod
    async def update_many(self, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    async def delete_one(self, filter: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    async def delete_many(self, filter: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    async def count(self, filter: Dict[str, Any]) -> int:
        ...


class DocumentStore(ABC):
    """Authoritative store for contexts, versions and feedback"""

    @abstractmethod
    def collection(self, name: str) -> DocumentCollection:
        ...

    @abstractmethod
    async def ping(self) -> bool:
        ...


class VectorIndex(ABC):
    """Similarity index over context embeddings, keyed by context id.

    Writes are idempotent: upserting an existing id replaces it and deleting
    a missing id is a no-op.
    """

    @abstractmethod
    async def search(
        self,
        vector: List[float],
        filter: VectorSearchFilter,
        limit: int,
        min_similarity: float = 0.0
    ) -> List[VectorHit]:
        ...

    @abstractmethod
    async def upsert(self, point: VectorPoint) -> None:
        ...

    @abstractmethod
    async def upsert_batch(self, points: List[VectorPoint]) -> None:
        ...

    @abstractmethod
    async def delete(self, context_id: str) -> None:
        ...

    @abstractmethod
    async def delete_batch(self, context_ids: List[str]) -> None:
        ...

    @abstractmethod
    async def delete_by_filter(self, filter: VectorSearchFilter) -> int:
        ...

    @abstractmethod
    async def count(self, filter: Optional[VectorSearchFilter] = None) -> int:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...
