"""
Sentinel protocol: the canonical "unset" value of a field type.

A reference field holding its sentinel is what triggers auto-creation
during `build_with_fks`, so every pk/reference type needs one.

Built-in specs cover int, str and UUID identifiers plus the absent
optional (`None`). Custom identifier types can either implement the
protocol themselves:

    class TenantId(int):
        @classmethod
        def sentinel(cls):
            return cls(0)

        def is_sentinel(self):
            return self == 0

or be registered with `register_sentinel(TenantId, spec)`.
"""
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, TypeVar

from pydantic_factory.exceptions import SentinelSpecError
from pydantic_factory.utils.types import shelling_optional

T = TypeVar('T')


@dataclass(frozen=True)
class SentinelSpec(Generic[T]):
    name: str
    sentinel: Callable[[], T]
    is_sentinel: Callable[[T], bool]

    def check(self) -> 'SentinelSpec[T]':
        try:
            ok = self.is_sentinel(self.sentinel())
        except Exception as e:
            raise SentinelSpecError(f'sentinel spec {self.name} failed to check its own sentinel') from e
        if not ok:
            raise SentinelSpecError(f'sentinel spec {self.name}: is_sentinel(sentinel()) must be True')
        return self

    def __repr__(self) -> str:
        return f'SentinelSpec({self.name})'


_NIL_UUID = uuid.UUID(int=0)

INT_ID: SentinelSpec[int] = SentinelSpec('int', lambda: 0, lambda v: v == 0)
STR_ID: SentinelSpec[str] = SentinelSpec('str', lambda: '', lambda v: v == '')
UUID_ID: SentinelSpec[uuid.UUID] = SentinelSpec('uuid', lambda: _NIL_UUID, lambda v: v == _NIL_UUID)
ABSENT: SentinelSpec[Any] = SentinelSpec('absent', lambda: None, lambda v: v is None)


def optional_of(spec: SentinelSpec[T]) -> SentinelSpec[Any]:
    """None is unset, so is the inner sentinel (Optional[int] holding 0)"""
    return SentinelSpec(
        f'optional[{spec.name}]',
        lambda: None,
        lambda v: v is None or spec.is_sentinel(v))


_registry: Dict[Any, SentinelSpec] = {
    int: INT_ID,
    str: STR_ID,
    uuid.UUID: UUID_ID,
    type(None): ABSENT,
}


def register_sentinel(tp: Any, spec: SentinelSpec) -> None:
    _registry[tp] = spec.check()


def _from_protocol(tp) -> SentinelSpec:
    return SentinelSpec(
        getattr(tp, '__name__', repr(tp)),
        tp.sentinel,
        lambda v: v.is_sentinel())


def _implements_protocol(tp) -> bool:
    return callable(getattr(tp, 'sentinel', None)) and callable(getattr(tp, 'is_sentinel', None))


def sentinel_for(annotation) -> SentinelSpec:
    """
    pick the sentinel spec for a field annotation

    lookup order: registry, protocol implemented by the type, then the
    closest registered base class. Optional[X] wraps the spec of X.
    """
    inner, optional = shelling_optional(annotation)

    spec = _registry.get(inner)
    if spec is None and _implements_protocol(inner):
        spec = _from_protocol(inner)
    if spec is None and isinstance(inner, type):
        for base in inner.__mro__[1:]:
            if base in _registry and base is not object:
                spec = _registry[base]
                break

    if spec is None:
        if optional:
            return ABSENT
        raise SentinelSpecError(f'no sentinel spec found for {annotation!r}, pass one with sentinel=...')

    return optional_of(spec).check() if optional else spec.check()
