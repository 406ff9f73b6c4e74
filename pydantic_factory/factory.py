import warnings
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Type, TypeVar

import pydantic_factory.constant as const
from pydantic_factory.descriptor import DescriptorTable, FieldDescriptor, get_descriptor_table
from pydantic_factory.exceptions import FieldNotFoundError, MissingRequiredField

F = TypeVar('F', bound='BaseFactory')

_METHODS_GENERATED = '__pydantic_factory_methods_generated__'


class BaseFactory:
    """
    staging object for one not-yet-created entity.

    class UserFactory(BaseFactory):
        __entity__ = User
        id: Annotated[int, Pk()]
        org_id: Annotated[int, Fk(Org, 'id', OrgFactory)]
        name: str = 'user'

    user = await UserFactory().with_name('kikodo').create(backend, adapter=adapter)

    every field starts from its default (pk and references from their sentinel),
    with_* methods override them, build / build_with_fks / create produce the entity.
    """

    def __init__(self):
        table = prepare(type(self))
        self._values: Dict[str, Any] = table.initial_values()
        self._explicitly_set: set = set()

    @classmethod
    def new(cls: Type[F]) -> F:
        return cls()

    @classmethod
    def descriptor_table(cls) -> DescriptorTable:
        return prepare(cls)

    @property
    def field_values(self) -> Mapping[str, Any]:
        return MappingProxyType(self._values)

    @property
    def explicitly_set(self) -> FrozenSet[str]:
        return frozenset(self._explicitly_set)

    def _descriptor(self, name: str) -> FieldDescriptor:
        descriptor = self.descriptor_table().get(name)
        if descriptor is None:
            raise FieldNotFoundError(f'{type(self).__name__} has no field {name!r}')
        return descriptor

    def _reference_descriptor(self, name: str) -> FieldDescriptor:
        descriptor = self._descriptor(name)
        if not descriptor.is_reference:
            raise FieldNotFoundError(f'{type(self).__name__}.{name} is not a reference field')
        return descriptor

    def with_field(self: F, name: str, value: Any) -> F:
        self._descriptor(name)
        self._values[name] = value
        self._explicitly_set.add(name)
        return self

    def with_reference(self: F, name: str, entity: Any) -> F:
        """share an already created entity, its identifying field becomes the value of `name`"""
        descriptor = self._reference_descriptor(name)
        if not isinstance(entity, descriptor.referenced_entity):
            raise TypeError(
                f'{type(self).__name__}.{name} expects {descriptor.referenced_entity.__name__}, '
                f'got {type(entity).__name__}')
        return self.with_field(name, getattr(entity, descriptor.referenced_identifying_field))

    def with_reference_id(self: F, name: str, id_value: Any) -> F:
        self._reference_descriptor(name)
        return self.with_field(name, id_value)

    def build(self):
        """in-memory entity, references are kept as staged (sentinels included)"""
        return compose(type(self), dict(self._values), self._explicitly_set)

    async def build_with_fks(self, backend=None, adapter=None):
        """entity with every unset required reference created first"""
        return await self._resolver(adapter).build_with_fks(self, backend)

    async def create(self, backend=None, adapter=None):
        """build_with_fks, then persist the entity itself"""
        return await self._resolver(adapter).create(self, backend)

    def _resolver(self, adapter):
        from pydantic_factory.resolver import Resolver
        resolver_kls = getattr(type(self), const.RESOLVER, None) or Resolver
        return resolver_kls(adapter=adapter)

    def __repr__(self) -> str:
        items = ', '.join(f'{k}={v!r}' for k, v in self._values.items())
        return f'{type(self).__name__}({items})'


def compose(kls, values: Dict[str, Any], explicitly_set):
    table = prepare(kls)
    missing = table.missing_required(explicitly_set)
    if missing:
        raise MissingRequiredField(kls, missing)
    return table.entity_kls(**values)


# ---------- generated with_* methods ----------

def _create_field_setter(name: str, method_name: str, kls):
    def setter(self, value):
        return self.with_field(name, value)
    setter.__name__ = method_name
    setter.__qualname__ = f'{kls.__name__}.{method_name}'
    setter.__doc__ = f'Set {name}.'
    return setter


def _create_reference_setter(name: str, method_name: str, kls):
    def setter(self, entity):
        return self.with_reference(name, entity)
    setter.__name__ = method_name
    setter.__qualname__ = f'{kls.__name__}.{method_name}'
    setter.__doc__ = f'Set {name} from an existing entity.'
    return setter


def _install(kls, method_name: str, method):
    if method_name in kls.__dict__:
        warnings.warn(f'{method_name} already exists in {kls.__name__}, skipping auto-generation.')
        return
    setattr(kls, method_name, method)


def prepare(kls) -> DescriptorTable:
    """build the table of a factory class and generate its with_* methods once"""
    table = get_descriptor_table(kls)
    if kls.__dict__.get(_METHODS_GENERATED):
        return table

    for f in table.descriptors:
        setter_names = f.setter_names()
        if not setter_names:
            continue

        field_setter = setter_names[0]  # with_<field>
        _install(kls, field_setter, _create_field_setter(f.name, field_setter, kls))

        if f.is_reference:
            reference_setter = setter_names[1]  # with_<reference>
            _install(kls, reference_setter, _create_reference_setter(f.name, reference_setter, kls))

    setattr(kls, _METHODS_GENERATED, True)
    return table
