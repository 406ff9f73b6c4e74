import copy
from dataclasses import dataclass, is_dataclass, fields as dc_fields
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Type, get_origin, get_type_hints

from pydantic import BaseModel, ConfigDict, model_validator

import pydantic_factory.constant as const
from pydantic_factory.exceptions import (
    FactoryConfigError,
    FactoryCycleError,
    SentinelSpecError,
    UnresolvedReferenceError,
)
from pydantic_factory.sentinel import SentinelSpec, sentinel_for
from pydantic_factory.utils import class_util
from pydantic_factory.utils.types import split_annotated, zero_value


class FieldRole(str, Enum):
    PLAIN = 'plain'
    PRIMARY_IDENTIFIER = 'primary_identifier'
    REQUIRED_REFERENCE = 'required_reference'
    OPTIONAL_REFERENCE_NO_AUTOCREATE = 'optional_reference_no_autocreate'
    REQUIRED_PLAIN = 'required_plain'


REFERENCE_ROLES = (FieldRole.REQUIRED_REFERENCE, FieldRole.OPTIONAL_REFERENCE_NO_AUTOCREATE)


# ---------- markers, used inside Annotated[...] ----------

@dataclass
class PkInfo:
    sentinel: Optional[SentinelSpec] = None


@dataclass
class ReferenceInfo:
    entity: Any
    field: str
    factory: Any
    no_default: bool = False
    sentinel: Optional[SentinelSpec] = None
    name: Optional[str] = None


@dataclass
class RequiredInfo:
    pass


def Pk(sentinel: Optional[SentinelSpec] = None) -> PkInfo:  # noqa: N802
    return PkInfo(sentinel=sentinel)


def Fk(  # noqa: N802
        entity: Any,
        field: str,
        factory: Any,
        no_default: bool = False,
        sentinel: Optional[SentinelSpec] = None,
        name: Optional[str] = None) -> ReferenceInfo:
    """
    declare a foreign key

    class PostFactory(BaseFactory):
        __entity__ = Post
        blog_id: Annotated[int, Fk(Blog, 'id', BlogFactory)]
        reviewer_id: Annotated[Optional[int], Fk(User, 'id', 'UserFactory', no_default=True)] = None

    - entity / factory: class or string reference ('Name' or 'pkg.module:Name')
    - field: field of the created dependency copied into this field
    - no_default: never auto-create, the staged value is kept as is
    - name: reference name used by with_<name>(entity), defaults to the field name without `_id`
    """
    return ReferenceInfo(entity=entity, field=field, factory=factory,
                         no_default=no_default, sentinel=sentinel, name=name)


def Required() -> RequiredInfo:  # noqa: N802
    return RequiredInfo()


_MARKERS = (PkInfo, ReferenceInfo, RequiredInfo)


# ---------- descriptors ----------

class FieldDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    role: FieldRole
    annotation: Any = None
    sentinel: Optional[Any] = None  # SentinelSpec, for pk and references
    default: Any = None  # initial value for plain fields
    default_is_zero: bool = False  # no class default, or one equal to the zero value of the type

    # references only
    reference_name: Optional[str] = None
    referenced_entity: Optional[Any] = None
    referenced_identifying_field: Optional[str] = None
    nested_builder_type: Optional[Any] = None

    @model_validator(mode="after")
    def _validate_role(self) -> "FieldDescriptor":
        if self.role in REFERENCE_ROLES:
            missing = [k for k in ('reference_name', 'referenced_entity',
                                   'referenced_identifying_field', 'nested_builder_type')
                       if getattr(self, k) is None]
            if missing:
                raise ValueError(f'reference field {self.name!r} is missing {", ".join(missing)}')
        if self.role in REFERENCE_ROLES or self.role == FieldRole.PRIMARY_IDENTIFIER:
            if self.sentinel is None:
                raise ValueError(f'field {self.name!r} needs a sentinel spec')
        return self

    @property
    def is_reference(self) -> bool:
        return self.role in REFERENCE_ROLES

    @property
    def auto_creates(self) -> bool:
        return self.role == FieldRole.REQUIRED_REFERENCE

    def initial_value(self):
        if self.sentinel is not None:
            return self.sentinel.sentinel()
        return copy.deepcopy(self.default)

    def is_unset(self, value) -> bool:
        return self.sentinel is not None and self.sentinel.is_sentinel(value)

    def setter_names(self) -> List[str]:
        if self.role == FieldRole.PRIMARY_IDENTIFIER:
            return []
        names = [f'{const.WITH_PREFIX}{self.name}']
        if self.is_reference:
            names.append(f'{const.WITH_PREFIX}{self.reference_name}')
        return names


class DescriptorTable(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    factory_kls: Any
    entity_kls: Any
    descriptors: List[FieldDescriptor]

    @model_validator(mode="after")
    def _validate_fields(self) -> "DescriptorTable":
        seen = set()
        for f in self.descriptors:
            if f.name in seen:
                raise ValueError(f'duplicate field {f.name!r} on {self.factory_kls.__name__}')
            seen.add(f.name)

        method_seen: Dict[str, str] = {}
        for f in self.descriptors:
            for method in f.setter_names():
                if method in method_seen:
                    raise ValueError(
                        f'{method} on {self.factory_kls.__name__} is generated for both '
                        f'{method_seen[method]!r} and {f.name!r}, pass Fk(name=...) to rename')
                method_seen[method] = f.name
        return self

    @property
    def names(self) -> List[str]:
        return [f.name for f in self.descriptors]

    def get(self, name: str) -> Optional[FieldDescriptor]:
        for f in self.descriptors:
            if f.name == name:
                return f
        return None

    def references(self) -> Iterator[FieldDescriptor]:
        """reference fields in declaration order"""
        return (f for f in self.descriptors if f.is_reference)

    def initial_values(self) -> Dict[str, Any]:
        return {f.name: f.initial_value() for f in self.descriptors}

    def missing_required(self, explicitly_set) -> Optional[str]:
        """first RequiredPlain field left at its type zero value and never set"""
        for f in self.descriptors:
            if f.role != FieldRole.REQUIRED_PLAIN or f.name in explicitly_set:
                continue
            if f.default_is_zero:
                return f.name
        return None


# ---------- construction ----------

_MISSING = object()


def _default_reference_name(field: str) -> str:
    """
    practice_id -> practice
    procedure_id_origin -> procedure_origin
    """
    if field.endswith(const.ID_SUFFIX):
        return field[:-len(const.ID_SUFFIX)]
    return field.replace('_id_', '_')


def _class_default(kls, name):
    for base in kls.__mro__:
        if name in base.__dict__:
            return base.__dict__[name]
    return _MISSING


def _declared_fields(kls):
    try:
        hints = get_type_hints(kls, include_extras=True)
    except NameError as e:
        raise UnresolvedReferenceError(f'unable to resolve annotations of {kls.__name__}: {e}') from e

    for name, hint in hints.items():
        if name.startswith('_') or get_origin(hint) is ClassVar:
            continue
        yield name, hint


def _identifying_field_exists(entity, field: str) -> bool:
    if class_util.safe_issubclass(entity, BaseModel):
        return field in entity.model_fields
    if is_dataclass(entity):
        return field in {f.name for f in dc_fields(entity)}
    return True


def _resolve(ref, kls, what: str, field: str):
    try:
        return class_util.resolve_ref(ref, kls.__module__)
    except LookupError as e:
        raise UnresolvedReferenceError(f'{kls.__name__}.{field}: unable to resolve {what} {ref!r}') from e


def _reference_descriptor(kls, name, annotation, marker: ReferenceInfo, default) -> FieldDescriptor:
    from pydantic_factory.factory import BaseFactory

    entity = _resolve(marker.entity, kls, 'entity', name)
    nested = _resolve(marker.factory, kls, 'factory', name)

    if not class_util.safe_issubclass(nested, BaseFactory):
        raise FactoryConfigError(f'{kls.__name__}.{name}: {nested!r} is not a factory')

    nested_entity = getattr(nested, const.ENTITY, None)
    if isinstance(nested_entity, str):
        nested_entity = _resolve(nested_entity, nested, 'entity', const.ENTITY)
    if not class_util.safe_issubclass(nested_entity, entity):
        raise FactoryConfigError(
            f'{kls.__name__}.{name}: {nested.__name__} creates {getattr(nested_entity, "__name__", nested_entity)}, '
            f'expected {getattr(entity, "__name__", entity)}')

    if not _identifying_field_exists(entity, marker.field):
        raise FactoryConfigError(f'{kls.__name__}.{name}: {entity.__name__} has no field {marker.field!r}')

    spec = _sentinel(kls, name, annotation, marker.sentinel)
    _ensure_default_is_sentinel(kls, name, spec, default)

    reference_name = marker.name or _default_reference_name(name)
    if reference_name == name:
        raise FactoryConfigError(
            f'{kls.__name__}.{name}: with_{name} would serve both entity and id, pass Fk(name=...)')

    role = FieldRole.OPTIONAL_REFERENCE_NO_AUTOCREATE if marker.no_default else FieldRole.REQUIRED_REFERENCE
    return FieldDescriptor(
        name=name,
        role=role,
        annotation=annotation,
        sentinel=spec,
        reference_name=reference_name,
        referenced_entity=entity,
        referenced_identifying_field=marker.field,
        nested_builder_type=nested)


def _sentinel(kls, name, annotation, explicit: Optional[SentinelSpec]) -> SentinelSpec:
    try:
        return explicit.check() if explicit is not None else sentinel_for(annotation)
    except SentinelSpecError as e:
        raise SentinelSpecError(f'{kls.__name__}.{name}: {e}') from e


def _ensure_default_is_sentinel(kls, name, spec: SentinelSpec, default):
    if default is not _MISSING and not spec.is_sentinel(default):
        raise FactoryConfigError(
            f'{kls.__name__}.{name}: default {default!r} must be the sentinel, use with_{name}() instead')


def _plain_default(kls, name, annotation, default, required: bool):
    """
    (initial value, whether it counts as unset)

    a required field without default needs no zero value, it holds None
    until set and build() reports it missing before the entity is constructed.
    """
    try:
        zero = zero_value(annotation)
    except Exception as e:
        if default is not _MISSING:
            return default, False
        if required:
            return None, True
        raise FactoryConfigError(
            f'{kls.__name__}.{name}: no zero value for {annotation!r}, provide a default') from e

    if default is _MISSING:
        return zero, True
    return default, default == zero


def build_descriptor_table(kls) -> DescriptorTable:
    """
    read the annotated class attributes of a factory class and produce its table.
    references are resolved but nested factories are not visited.
    """
    from pydantic_factory.factory import BaseFactory

    entity = getattr(kls, const.ENTITY, None)
    if entity is None:
        raise FactoryConfigError(f'{kls.__name__} must declare {const.ENTITY}')
    entity = _resolve(entity, kls, 'entity', const.ENTITY)

    descriptors: List[FieldDescriptor] = []
    for name, hint in _declared_fields(kls):
        if hasattr(BaseFactory, name):
            raise FactoryConfigError(f'{kls.__name__}.{name} shadows a factory method')

        annotation, metadata = split_annotated(hint)
        markers = [m for m in metadata if isinstance(m, _MARKERS)]
        if len(markers) > 1:
            raise FactoryConfigError(f'{kls.__name__}.{name}: only one of Pk, Fk, Required is allowed')
        marker = markers[0] if markers else None
        default = _class_default(kls, name)

        if isinstance(marker, ReferenceInfo):
            descriptors.append(_reference_descriptor(kls, name, annotation, marker, default))

        elif isinstance(marker, PkInfo):
            spec = _sentinel(kls, name, annotation, marker.sentinel)
            _ensure_default_is_sentinel(kls, name, spec, default)
            descriptors.append(FieldDescriptor(
                name=name, role=FieldRole.PRIMARY_IDENTIFIER, annotation=annotation, sentinel=spec))

        else:
            required = isinstance(marker, RequiredInfo)
            role = FieldRole.REQUIRED_PLAIN if required else FieldRole.PLAIN
            value, is_zero = _plain_default(kls, name, annotation, default, required)
            descriptors.append(FieldDescriptor(
                name=name, role=role, annotation=annotation,
                default=value, default_is_zero=is_zero))

    for f in descriptors:
        for method in f.setter_names():
            if hasattr(BaseFactory, method):
                raise FactoryConfigError(f'{kls.__name__}.{f.name}: generated {method} shadows a factory method')

    try:
        return DescriptorTable(factory_kls=kls, entity_kls=entity, descriptors=descriptors)
    except ValueError as e:  # pydantic ValidationError is a ValueError
        raise FactoryConfigError(str(e)) from e


def _table_of(kls, tables: Dict[Type, DescriptorTable]) -> DescriptorTable:
    table = kls.__dict__.get(const.DESCRIPTOR_TABLE)
    if table is None:
        table = tables.get(kls)
    if table is None:
        table = build_descriptor_table(kls)
        tables[kls] = table
    return table


def _ensure_acyclic(kls, path: List[Type], done: set, tables: Dict[Type, DescriptorTable]):
    """depth first walk over auto-creating references only"""
    if kls in path:
        raise FactoryCycleError(path[path.index(kls):] + [kls])
    if kls in done or const.DESCRIPTOR_TABLE in kls.__dict__:
        return

    table = _table_of(kls, tables)
    path.append(kls)
    for f in table.references():
        if f.auto_creates:
            _ensure_acyclic(f.nested_builder_type, path, done, tables)
    path.pop()
    done.add(kls)


def get_descriptor_table(kls) -> DescriptorTable:
    """
    table of a factory class, built on first use and cached on the class.
    every factory reachable through auto-created references is checked for cycles.
    """
    table = kls.__dict__.get(const.DESCRIPTOR_TABLE)
    if table is not None:
        return table

    tables: Dict[Type, DescriptorTable] = {}
    _ensure_acyclic(kls, [], set(), tables)

    for k, t in tables.items():
        setattr(k, const.DESCRIPTOR_TABLE, t)
    return tables[kls]


def resolution_order(kls) -> List[Type]:
    """
    factories persisted by build_with_fks on a fresh factory, dependencies first.

    PostFactory -> [OrgFactory, UserFactory, BlogFactory]
    create() appends the factory itself.
    """
    result: List[Type] = []

    def walk(k):
        for f in get_descriptor_table(k).references():
            if f.auto_creates:
                walk(f.nested_builder_type)
                result.append(f.nested_builder_type)

    walk(kls)
    return result
