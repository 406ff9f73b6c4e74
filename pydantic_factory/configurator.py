from typing import Any, Optional
import pydantic_factory.constant as const
import pydantic_factory.resolver as resolver


def config_resolver(name: Optional[str] = None,
                    adapter: Optional[Any] = None,
                    debug: bool = False):
    """
    new Resolver class with a default adapter, use it per factory:

    MemoryResolver = config_resolver('MemoryResolver', adapter=InMemoryAdapter())

    class OrgFactory(BaseFactory):
        __resolver__ = MemoryResolver
    """
    new_resolver = type(
        name or resolver.Resolver.__name__,
        resolver.Resolver.__bases__,
        dict(resolver.Resolver.__dict__)
    )
    setattr(new_resolver, const.DEFAULT_ADAPTER, adapter)
    setattr(new_resolver, const.DEBUG, debug)
    return new_resolver


def config_global_resolver(adapter: Optional[Any] = None):
    """default adapter for every factory without __resolver__, None to reset"""
    setattr(resolver.Resolver, const.DEFAULT_ADAPTER, adapter)
