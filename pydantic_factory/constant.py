ENTITY = '__entity__'
RESOLVER = '__resolver__'
DESCRIPTOR_TABLE = '__pydantic_factory_descriptor_table__'
DEFAULT_ADAPTER = '__pydantic_factory_default_adapter__'

WITH_PREFIX = 'with_'
ID_SUFFIX = '_id'

DEBUG_ENV = 'PYDANTIC_FACTORY_DEBUG'
DEBUG = '__pydantic_factory_debug__'
