import abc
import dataclasses
from collections import defaultdict
from typing import Any, Callable, DefaultDict, Dict, Generic, List, Type, TypeVar

from pydantic import BaseModel

from pydantic_factory.exceptions import SentinelSpecError
from pydantic_factory.sentinel import sentinel_for

B = TypeVar("B")
E = TypeVar("E")


class PersistenceAdapter(Generic[B], metaclass=abc.ABCMeta):
    """
    stores one fully populated entity and returns it with server assigned
    fields (the identifier) filled in.

    persist may be a plain or an async function.
    """

    @abc.abstractmethod
    def persist(self, entity: E, backend: B) -> E:
        """store entity with backend"""


class CallableAdapter(PersistenceAdapter[Any]):
    """
    async def insert(entity, session):
        session.add(entity)
        await session.flush()
        return entity

    adapter = CallableAdapter(insert)
    """
    def __init__(self, fn: Callable[[Any, Any], Any]):
        self.fn = fn

    def persist(self, entity, backend):
        return self.fn(entity, backend)


class InMemoryBackend:
    """
    rows grouped by entity type, identifiers assigned sequentially from 1 per type.
    `persisted` keeps every stored entity in insertion order.
    """
    def __init__(self):
        self.rows: DefaultDict[Type, List[Any]] = defaultdict(list)
        self.persisted: List[Any] = []
        self._counters: Dict[Type, int] = defaultdict(int)

    def next_id(self, kls: Type) -> int:
        self._counters[kls] += 1
        return self._counters[kls]

    def insert(self, entity):
        self.rows[type(entity)].append(entity)
        self.persisted.append(entity)
        return entity

    def count(self, kls: Type) -> int:
        return len(self.rows[kls])


def _replace(entity, **changes):
    if isinstance(entity, BaseModel):
        return entity.model_copy(update=changes)
    if dataclasses.is_dataclass(entity):
        return dataclasses.replace(entity, **changes)
    raise TypeError(f'can not copy {type(entity).__name__}, use a pydantic model or a dataclass')


class InMemoryAdapter(PersistenceAdapter[InMemoryBackend]):
    def __init__(self, id_field: str = 'id'):
        self.id_field = id_field

    def persist(self, entity, backend: InMemoryBackend):
        current = getattr(entity, self.id_field)
        if _is_unset(current):
            entity = _replace(entity, **{self.id_field: backend.next_id(type(entity))})
        return backend.insert(entity)


def _is_unset(value) -> bool:
    try:
        spec = sentinel_for(type(value))
    except SentinelSpecError:
        return False
    return spec.is_sentinel(value)
