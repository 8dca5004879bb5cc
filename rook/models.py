"""Route table and hook subscription types shared across rook components."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Sequence, Tuple, Union


class HookKind(str, Enum):
    """The kinds of hook a path can be bound to."""

    SOURCE_EVENT = "github"
    GENERIC = "rook"


class InputMode(str, Enum):
    """How a generic hook hands the request body to its command."""

    ARGS = "args"
    ENV = "env"


@dataclass(frozen=True)
class SourceEventHook:
    """Runs a command for push events from one repository."""

    repo: str
    command: str
    secret: bytes = field(repr=False)

    kind = HookKind.SOURCE_EVENT


@dataclass(frozen=True)
class GenericHook:
    """Runs a command with arguments taken from the request body."""

    command: str
    secret: bytes = field(repr=False)
    input_mode: InputMode = InputMode.ARGS

    kind = HookKind.GENERIC


HookSubscription = Union[SourceEventHook, GenericHook]


@dataclass(frozen=True)
class Route:
    """Subscribers registered for a single URL path."""

    path: str
    kind: HookKind
    hooks: Tuple[HookSubscription, ...]


class RouteTable:
    """Immutable mapping from URL path to its registered subscribers.

    Each path is bound to exactly one hook kind. The table is built once at
    startup and only read afterwards, so request handlers share it freely.
    """

    def __init__(self, routes: Mapping[str, Sequence[HookSubscription]] | None = None) -> None:
        table: dict[str, Route] = {}
        for path, hooks in (routes or {}).items():
            hooks = tuple(hooks)
            if not hooks:
                continue
            kinds = {hook.kind for hook in hooks}
            if len(kinds) > 1:
                raise ValueError(f"hook path type conflict: '{path}'")
            table[path] = Route(path=path, kind=hooks[0].kind, hooks=hooks)
        self._routes: Mapping[str, Route] = MappingProxyType(table)

    def resolve(self, path: str) -> Optional[Route]:
        """Return the route registered for ``path``, if any."""
        return self._routes.get(path)

    def paths(self, kind: HookKind | None = None) -> list[str]:
        return [
            path
            for path, route in self._routes.items()
            if kind is None or route.kind is kind
        ]

    def __len__(self) -> int:
        return len(self._routes)

    def __contains__(self, path: object) -> bool:
        return path in self._routes

    def __iter__(self):
        return iter(self._routes.values())


__all__ = [
    "GenericHook",
    "HookKind",
    "HookSubscription",
    "InputMode",
    "Route",
    "RouteTable",
    "SourceEventHook",
]
