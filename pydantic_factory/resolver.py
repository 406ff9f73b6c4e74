import os
import asyncio
from inspect import iscoroutine
from typing import Any, List, Optional, TypeVar

import pydantic_factory.constant as const
import pydantic_factory.utils.profile as profile_util
from pydantic_factory.adapter import PersistenceAdapter, CallableAdapter
from pydantic_factory.exceptions import AdapterNotProvidedError, PersistenceFailure
from pydantic_factory.factory import BaseFactory, compose, prepare
from pydantic_factory.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class Resolver:
    """
    depth-first, post-order creation of unset required references.

    for each reference field, in declaration order:
    - no-autocreate references are left as staged
    - a reference holding anything but its sentinel short-circuits
    - otherwise a fresh nested factory is resolved, persisted through the adapter
      and its identifying field is copied in

    everything runs sequentially: the chain usually shares one backend
    connection / transaction which can not be driven concurrently.
    adapter failures abort the walk, nothing persisted before is rolled back.
    """
    def __init__(
            self,
            adapter: Optional[Any] = None,
            debug: bool = False,
            ):
        self.debug = debug or getattr(type(self), const.DEBUG, False) \
            or os.getenv(const.DEBUG_ENV, "false").lower() == "true"
        self.adapter = self._prepare_adapter(adapter)
        self.performance = profile_util.Profile()

    def _prepare_adapter(self, adapter) -> Optional[PersistenceAdapter]:
        if adapter is None:
            adapter = getattr(type(self), const.DEFAULT_ADAPTER, None)
        if adapter is None or isinstance(adapter, PersistenceAdapter):
            return adapter
        if callable(adapter):
            return CallableAdapter(adapter)
        raise TypeError(f'{adapter!r} is neither a PersistenceAdapter nor callable')

    def _ensure_adapter(self) -> PersistenceAdapter:
        if self.adapter is None:
            raise AdapterNotProvidedError(
                'adapter is missing, pass adapter=... or configure one with config_global_resolver')
        return self.adapter

    async def _persist(self, entity: T, backend) -> T:
        adapter = self._ensure_adapter()
        try:
            val = adapter.persist(entity, backend)
            while iscoroutine(val) or asyncio.isfuture(val):
                val = await val
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(entity, f'failed to persist {type(entity).__name__}: {e}') from e

        if self.debug:
            logger.debug(f'persisted {val!r}')
        return val

    async def _resolve(self, factory: BaseFactory, backend, path: List[str]):
        kls = type(factory)
        table = prepare(kls)
        values = dict(factory.field_values)

        for descriptor in table.references():
            if not descriptor.auto_creates:
                continue

            field_path = path + [descriptor.name]
            if not descriptor.is_unset(values[descriptor.name]):
                if self.debug:
                    logger.debug(f'{".".join(field_path)} provided, skip')
                continue

            nested_kls = descriptor.nested_builder_type
            if self.debug:
                logger.debug(f'{".".join(field_path)} unset, creating {nested_kls.__name__}')

            dependency = await self._create(nested_kls.new(), backend, field_path)
            value = getattr(dependency, descriptor.referenced_identifying_field)
            if descriptor.is_unset(value):
                logger.warning(
                    f'{nested_kls.__name__} persisted without {descriptor.referenced_identifying_field}, '
                    f'{kls.__name__}.{descriptor.name} is still unset')
            values[descriptor.name] = value

        return compose(kls, values, factory.explicitly_set)

    async def _create(self, factory: BaseFactory, backend, path: List[str]):
        if not self.debug:
            entity = await self._resolve(factory, backend, path)
            return await self._persist(entity, backend)

        timer = self.performance.get_timer(path)
        tid = timer.start()
        try:
            entity = await self._resolve(factory, backend, path)
            return await self._persist(entity, backend)
        finally:
            timer.end(tid)

    async def build_with_fks(self, factory: BaseFactory, backend=None):
        """resolve references of factory, the returned entity itself is not persisted"""
        self._ensure_adapter()
        path = [type(factory).__name__]

        if not self.debug:
            return await self._resolve(factory, backend, path)

        timer = self.performance.get_timer(path)
        tid = timer.start()
        try:
            return await self._resolve(factory, backend, path)
        finally:
            timer.end(tid)
            self.performance.report()

    async def create(self, factory: BaseFactory, backend=None):
        """resolve references of factory, then persist the entity itself"""
        self._ensure_adapter()
        try:
            return await self._create(factory, backend, [type(factory).__name__])
        finally:
            if self.debug:
                self.performance.report()
