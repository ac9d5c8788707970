"""Module registry and dependency-ordered builder.

A module is a long-lived capability unit (a database handle, an API
client, a poll manager...). Modules declare the modules they need,
are constructed once at startup after those dependencies, and
contribute commands and completion resolvers while being installed.

Key classes:
    Module: Base class for capability units.
    ModuleRegistry: One instance per module type, looked up by type.
    RegistryBuilder: Memoized, depth-first, async construction.
    BotState: Frozen result of a build (registry + tables).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Dict, List, Optional, Tuple, Type, TypeVar

import structlog

from .commands.base import CommandTable
from .completion import CompletionChain
from .exceptions import (
    CyclicDependencyError,
    LPBotError,
    ModuleError,
    ModuleInitError,
    ModuleNotRegisteredError,
)

if TYPE_CHECKING:
    from .config import Config

logger = structlog.get_logger("lpbot.modules")

M = TypeVar("M", bound="Module")


class Module:
    """Base class for modules.

    Override the hooks you need:

    * ``depends_on`` lists modules that must exist before construction.
      Override ``dependencies`` instead when the set is dynamic.
    * ``construct`` builds the instance from the registry built so far.
      It may perform I/O (open a database, check credentials).
    * ``register`` adds commands and completion resolvers.
    * ``close`` releases resources at shutdown.
    """

    depends_on: ClassVar[Tuple[Type["Module"], ...]] = ()

    @classmethod
    async def dependencies(cls, builder: "RegistryBuilder") -> "RegistryBuilder":
        for dep in cls.depends_on:
            builder = await builder.with_module(dep)
        return builder

    @classmethod
    async def construct(cls, modules: "ModuleRegistry") -> "Module":
        return cls()

    def register(self, commands: CommandTable, completions: CompletionChain) -> None:
        pass

    async def close(self) -> None:
        pass


class ModuleRegistry:
    """Store holding at most one instance per module type.

    Populated by RegistryBuilder, then frozen. Lookups never perform I/O.

    Args:
        config: The Config modules were built with.
    """

    def __init__(self, config: Optional["Config"] = None):
        self.config = config
        self._modules: Dict[type, Module] = {}
        self._frozen = False

    def insert(self, instance: Module) -> None:
        module_cls = type(instance)
        if self._frozen:
            raise ModuleError(
                f"Registry is frozen, cannot add {module_cls.__name__}",
                module_name=module_cls.__name__,
            )
        if module_cls in self._modules:
            raise ModuleError(
                f"Module {module_cls.__name__} is already registered",
                module_name=module_cls.__name__,
            )
        self._modules[module_cls] = instance

    def get(self, module_cls: Type[M]) -> M:
        """Return the instance of ``module_cls``.

        Raises:
            ModuleNotRegisteredError: nobody installed that module.
        """
        try:
            return self._modules[module_cls]  # type: ignore[return-value]
        except KeyError:
            raise ModuleNotRegisteredError(module_name=module_cls.__name__) from None

    def get_shared(self, module_cls: Type[M]) -> M:
        """Return a handle that may be held across ``await`` points.

        Instances are never replaced once installed, so this is the same
        object ``get`` returns.
        """
        return self.get(module_cls)

    def instances(self) -> List[Module]:
        """All instances in build order."""
        return list(self._modules.values())

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    async def close_all(self) -> None:
        """Call close() on every module, dependents before dependencies."""
        for instance in reversed(self.instances()):
            name = type(instance).__name__
            try:
                await instance.close()
                logger.info("module_closed", module=name)
            except Exception as e:
                logger.error("module_close_failed", module=name, error=str(e))

    def __contains__(self, module_cls: object) -> bool:
        return module_cls in self._modules

    def __len__(self) -> int:
        return len(self._modules)


@dataclass(frozen=True)
class BotState:
    """Everything the dispatcher needs, frozen after startup."""
    modules: ModuleRegistry
    commands: CommandTable
    completions: CompletionChain


class RegistryBuilder:
    """Builds modules in dependency order, each exactly once.

    ``with_module`` is chainable::

        builder = RegistryBuilder(config)
        builder = await builder.with_module(ModLp)
        builder = await builder.with_module(ModQuotes)
        state = builder.build()

    Args:
        config: Config handed to modules through ``ModuleRegistry.config``.
    """

    def __init__(self, config: Optional["Config"] = None):
        self.registry = ModuleRegistry(config)
        self.commands = CommandTable()
        self.completions = CompletionChain()
        self._in_progress: List[type] = []

    async def with_module(self, module_cls: Type[Module]) -> "RegistryBuilder":
        """Build ``module_cls`` and its dependencies unless already present.

        Raises:
            CyclicDependencyError: ``module_cls`` is already being built
                further up the dependency chain.
            ModuleInitError: construction raised a non-LPBot error.
        """
        if module_cls in self.registry:
            return self
        if module_cls in self._in_progress:
            start = self._in_progress.index(module_cls)
            cycle = [m.__name__ for m in self._in_progress[start:]] + [module_cls.__name__]
            raise CyclicDependencyError(cycle=cycle)

        name = module_cls.__name__
        self._in_progress.append(module_cls)
        try:
            await module_cls.dependencies(self)
            logger.debug("module_constructing", module=name)
            try:
                instance = await module_cls.construct(self.registry)
            except LPBotError:
                raise
            except Exception as e:
                raise ModuleInitError(
                    f"Failed to construct {name}: {e}", module_name=name
                ) from e
        finally:
            self._in_progress.pop()

        self._install(instance)
        return self

    async def with_instance(self, instance: Module) -> "RegistryBuilder":
        """Install an already constructed module.

        Its dependencies are still resolved first and its ``register``
        step still runs.
        """
        module_cls = type(instance)
        if module_cls in self.registry:
            raise ModuleError(
                f"Module {module_cls.__name__} is already registered",
                module_name=module_cls.__name__,
            )
        self._in_progress.append(module_cls)
        try:
            await module_cls.dependencies(self)
        finally:
            self._in_progress.pop()
        self._install(instance)
        return self

    def _install(self, instance: Module) -> None:
        before = len(self.commands)
        instance.register(self.commands, self.completions)
        self.registry.insert(instance)
        logger.info(
            "module_initialized",
            module=type(instance).__name__,
            commands=len(self.commands) - before,
        )

    def build(self) -> BotState:
        """Freeze the registry and tables and return them."""
        self.registry.freeze()
        self.commands.freeze()
        self.completions.freeze()
        return BotState(self.registry, self.commands, self.completions)
