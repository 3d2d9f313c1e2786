"""
Declarative per-test fixtures with explicit dependencies.

A fixture is an async generator function that receives its resolved
dependencies and yields exactly one value; code after the ``yield`` is its
teardown. Dependencies are declared by name::

    registry = FixtureRegistry()

    @registry.fixture("app", requires=("page",))
    async def app(deps):
        yield AppControl(deps["page"])

Values are built lazily inside a ``FixtureScope``, at most once per scope,
and torn down in reverse construction order when the scope exits.
"""

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from types import TracebackType
from typing import (
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Type,
)

from kit_e2e.errors import FixtureResolutionError

logger = logging.getLogger(__name__)

Factory = Callable[[Mapping[str, object]], AsyncIterator[object]]


@dataclass(frozen=True)
class FixtureDefinition:
    """
    A named fixture and the names it depends on.

    A definition that requires its own name receives the base value of that
    name, which lets it wrap what the underlying test runner provides.
    """

    name: str
    requires: Tuple[str, ...]
    factory: Factory

    @property
    def wraps_base(self) -> bool:
        return self.name in self.requires


class FixtureRegistry:
    """A set of fixture definitions, validated and resolved by name."""

    def __init__(self, definitions: Iterable[FixtureDefinition] = ()) -> None:
        self._definitions: Dict[str, FixtureDefinition] = {}
        for definition in definitions:
            self.define(definition)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __getitem__(self, name: str) -> FixtureDefinition:
        return self._definitions[name]

    def define(self, definition: FixtureDefinition) -> FixtureDefinition:
        if definition.name in self._definitions:
            raise FixtureResolutionError(
                f"Fixture '{definition.name}' is already defined"
            )
        self._definitions[definition.name] = definition
        return definition

    def fixture(
        self, name: Optional[str] = None, *, requires: Iterable[str] = ()
    ) -> Callable[[Factory], Factory]:
        """Decorator registering an async generator function as a fixture."""

        def decorator(factory: Factory) -> Factory:
            self.define(
                FixtureDefinition(
                    name=name or factory.__name__,
                    requires=tuple(requires),
                    factory=factory,
                )
            )
            return factory

        return decorator

    def extend(self, *definitions: FixtureDefinition) -> "FixtureRegistry":
        """A new registry with this one's definitions plus ``definitions``."""
        return FixtureRegistry([*self._definitions.values(), *definitions])

    def validate(self, base_names: Iterable[str] = ()) -> List[str]:
        """
        Check that every dependency resolves and there are no cycles.

        Returns the fixture names in construction order.
        Raises FixtureResolutionError otherwise.
        """
        base = set(base_names)
        order: List[str] = []
        done: Set[str] = set()

        def visit(name: str, path: Tuple[str, ...]) -> None:
            if name in done:
                return
            if name in path:
                cycle = " -> ".join((*path[path.index(name):], name))
                raise FixtureResolutionError(f"Fixture dependency cycle: {cycle}")
            definition = self._definitions[name]
            for dependency in definition.requires:
                if dependency == name:
                    if dependency not in base:
                        raise FixtureResolutionError(
                            f"Fixture '{name}' wraps a base fixture that is not provided"
                        )
                elif dependency in self._definitions:
                    visit(dependency, (*path, name))
                elif dependency not in base:
                    raise FixtureResolutionError(
                        f"Fixture '{name}' requires unknown fixture '{dependency}'"
                    )
            done.add(name)
            order.append(name)

        for name in self._definitions:
            visit(name, ())
        return order

    def scope(self, base: Optional[Mapping[str, object]] = None) -> "FixtureScope":
        return FixtureScope(self, base or {})


class FixtureScope:
    """Lazily built fixture values for one test."""

    def __init__(self, registry: FixtureRegistry, base: Mapping[str, object]) -> None:
        self.registry = registry
        self.base = dict(base)
        self._values: Dict[str, "asyncio.Future[object]"] = {}
        self._stack: Optional[AsyncExitStack] = None
        self.constructed: List[str] = []

    async def __aenter__(self) -> "FixtureScope":
        self._stack = AsyncExitStack()
        await self._stack.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> Optional[bool]:
        stack, self._stack = self._stack, None
        self._values.clear()
        if stack is None:
            return None
        return await stack.__aexit__(exc_type, exc, tb)

    async def get(self, name: str) -> object:
        """Return the value of ``name``, constructing it and its dependencies."""
        return await self._resolve(name, ())

    async def _resolve(self, name: str, path: Tuple[str, ...]) -> object:
        if name not in self.registry:
            return self._base_value(name, path)
        if name in path:
            cycle = " -> ".join((*path[path.index(name):], name))
            raise FixtureResolutionError(f"Fixture dependency cycle: {cycle}")

        existing = self._values.get(name)
        if existing is not None:
            return await existing

        future: "asyncio.Future[object]" = asyncio.get_running_loop().create_future()
        self._values[name] = future
        try:
            value = await self._construct(self.registry[name], (*path, name))
        except Exception as e:
            del self._values[name]
            future.set_exception(e)
            # Marked retrieved; concurrent waiters re-raise it themselves.
            future.exception()
            raise
        except BaseException:
            del self._values[name]
            future.cancel()
            raise
        future.set_result(value)
        return value

    def _base_value(self, name: str, path: Tuple[str, ...]) -> object:
        if name not in self.base:
            requester = f" (required by '{path[-1]}')" if path else ""
            raise FixtureResolutionError(f"Unknown fixture '{name}'{requester}")
        return self.base[name]

    async def _construct(
        self, definition: FixtureDefinition, path: Tuple[str, ...]
    ) -> object:
        if self._stack is None:
            raise FixtureResolutionError(
                f"Fixture '{definition.name}' requested outside an active scope"
            )

        deps: Dict[str, object] = {}
        for dependency in definition.requires:
            if dependency == definition.name:
                deps[dependency] = self._base_value(dependency, path)
            else:
                deps[dependency] = await self._resolve(dependency, path)

        value = await self._stack.enter_async_context(
            asynccontextmanager(definition.factory)(deps)
        )
        self.constructed.append(definition.name)
        logger.debug(f"Constructed fixture '{definition.name}'")
        return value
