from .sentinel import (
    SentinelSpec,
    INT_ID,
    STR_ID,
    UUID_ID,
    ABSENT,
    optional_of,
    register_sentinel,
    sentinel_for)
from .descriptor import (
    Pk,
    Fk,
    Required,
    FieldRole,
    FieldDescriptor,
    DescriptorTable,
    get_descriptor_table,
    resolution_order)
from .factory import BaseFactory
from .adapter import PersistenceAdapter, CallableAdapter, InMemoryAdapter, InMemoryBackend
from .resolver import Resolver
from .configurator import config_resolver, config_global_resolver
from .exceptions import (
    FactoryConfigError,
    SentinelSpecError,
    FactoryCycleError,
    UnresolvedReferenceError,
    FieldNotFoundError,
    AdapterNotProvidedError,
    MissingRequiredField,
    PersistenceFailure)


__all__ = [
    'BaseFactory',
    'Resolver',
    'Pk',
    'Fk',
    'Required',

    'SentinelSpec',
    'INT_ID',
    'STR_ID',
    'UUID_ID',
    'ABSENT',
    'optional_of',
    'register_sentinel',
    'sentinel_for',

    'FieldRole',
    'FieldDescriptor',
    'DescriptorTable',
    'get_descriptor_table',
    'resolution_order',

    'PersistenceAdapter',
    'CallableAdapter',
    'InMemoryAdapter',
    'InMemoryBackend',

    'config_resolver',
    'config_global_resolver',

    'FactoryConfigError',
    'SentinelSpecError',
    'FactoryCycleError',
    'UnresolvedReferenceError',
    'FieldNotFoundError',
    'AdapterNotProvidedError',
    'MissingRequiredField',
    'PersistenceFailure',
]
