from typing import Dict, List, Any, Optional
import asyncio
import copy

from axon.domain.context.ports import DocumentCollection, DocumentStore, SortSpec

_MISSING = object()


def _get_path(document: Dict[str, Any], path: str) -> Any:
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _set_path(document: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


def _matches(document: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    for path, condition in filter.items():
        value = _get_path(document, path)

        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            for op, operand in condition.items():
                if op == "$in":
                    if value is _MISSING or value not in operand:
                        return False
                elif op == "$gte":
                    if value is _MISSING or value is None or value < operand:
                        return False
                elif op == "$lte":
                    if value is _MISSING or value is None or value > operand:
                        return False
                else:
                    raise ValueError(f"Unsupported filter operator: {op}")
        elif value is _MISSING or value != condition:
            return False

    return True


def _apply_update(document: Dict[str, Any], update: Dict[str, Any]) -> None:
    for op, fields in update.items():
        if op == "$set":
            for path, value in fields.items():
                _set_path(document, path, copy.deepcopy(value))
        elif op == "$inc":
            for path, amount in fields.items():
                current = _get_path(document, path)
                base = 0 if current is _MISSING or current is None else current
                _set_path(document, path, base + amount)
        else:
            raise ValueError(f"Unsupported update operator: {op}")


def _sorted(documents: List[Dict[str, Any]], sort: SortSpec) -> List[Dict[str, Any]]:
    # Apply keys last to first so the first key wins (sorts are stable)
    result = list(documents)
    for path, direction in reversed(sort):
        def sort_key(doc, path=path):
            value = _get_path(doc, path)
            if value is _MISSING or value is None:
                return (1, 0)
            return (0, value)
        result.sort(key=sort_key, reverse=direction < 0)
    return result


class MemoryCollection(DocumentCollection):
    """In-memory document collection"""

    def __init__(self, name: str):
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self._lock = asyncio.Lock()

    async def insert_one(self, document: Dict[str, Any]) -> None:
        async with self._lock:
            self.documents.append(copy.deepcopy(document))

    async def insert_many(self, documents: List[Dict[str, Any]]) -> None:
        async with self._lock:
            self.documents.extend(copy.deepcopy(doc) for doc in documents)

    async def find_one(
        self,
        filter: Dict[str, Any],
        sort: Optional[SortSpec] = None
    ) -> Optional[Dict[str, Any]]:
        results = await self.find(filter, sort=sort, limit=1)
        return results[0] if results else None

    async def find(
        self,
        filter: Dict[str, Any],
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        async with self._lock:
            matched = [doc for doc in self.documents if _matches(doc, filter)]
            if sort:
                matched = _sorted(matched, sort)
            matched = matched[skip:]
            if limit is not None:
                matched = matched[:limit]
            return copy.deepcopy(matched)

    async def update_one(self, filter: Dict[str, Any], update: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._lock:
            for doc in self.documents:
                if _matches(doc, filter):
                    _apply_update(doc, update)
                    return copy.deepcopy(doc)
            return None

    async def update_many(self, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        async with self._lock:
            updated = 0
            for doc in self.documents:
                if _matches(doc, filter):
                    _apply_update(doc, update)
                    updated += 1
            return updated

    async def delete_one(self, filter: Dict[str, Any]) -> int:
        async with self._lock:
            for index, doc in enumerate(self.documents):
                if _matches(doc, filter):
                    del self.documents[index]
                    return 1
            return 0

    async def delete_many(self, filter: Dict[str, Any]) -> int:
        async with self._lock:
            kept = [doc for doc in self.documents if not _matches(doc, filter)]
            deleted = len(self.documents) - len(kept)
            self.documents = kept
            return deleted

    async def count(self, filter: Dict[str, Any]) -> int:
        async with self._lock:
            return sum(1 for doc in self.documents if _matches(doc, filter))


class DocumentMemoryStore(DocumentStore):
    """In-memory document store with Mongo-style filters"""

    def __init__(self):
        self.collections: Dict[str, MemoryCollection] = {}

    def collection(self, name: str) -> MemoryCollection:
        if name not in self.collections:
            self.collections[name] = MemoryCollection(name)
        return self.collections[name]

    async def ping(self) -> bool:
        return True
