class FactoryConfigError(Exception):
    pass

class SentinelSpecError(FactoryConfigError):
    pass

class FactoryCycleError(FactoryConfigError):
    def __init__(self, cycle):
        self.cycle = cycle
        names = ' -> '.join(kls.__name__ for kls in cycle)
        super().__init__(f'auto-create cycle detected: {names}')

class UnresolvedReferenceError(FactoryConfigError):
    pass

class FieldNotFoundError(AttributeError):
    pass

class AdapterNotProvidedError(Exception):
    pass

class MissingRequiredField(Exception):
    def __init__(self, factory_kls, field: str):
        self.factory_kls = factory_kls
        self.field = field
        super().__init__(f'{field} is required - use with_{field}()')

class PersistenceFailure(Exception):
    """wraps whatever the adapter raised, original exception kept as __cause__"""
    def __init__(self, entity, message: str):
        self.entity = entity
        super().__init__(message)
