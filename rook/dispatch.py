"""Fan-out of a verified request to every subscriber registered on its path."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Sequence

from . import signature
from .errors import DispatchFailed, NoRoute, RookError, SignatureMismatch
from .launcher import Launcher
from .logging import get_logger
from .models import GenericHook, HookKind, InputMode, Route, RouteTable, SourceEventHook
from .payloads import decode_command_line, parse_push_event, split_command_line


class Verdict(str, Enum):
    NO_ROUTE = "no_route"
    SIGNATURE_MISMATCH = "signature_mismatch"
    SERVER_ERROR = "server_error"
    SUCCESS = "success"


_VERDICT_ERRORS: Mapping[Verdict, type[RookError]] = {
    Verdict.NO_ROUTE: NoRoute,
    Verdict.SIGNATURE_MISMATCH: SignatureMismatch,
    Verdict.SERVER_ERROR: DispatchFailed,
}


@dataclass
class DispatchOutcome:
    """Per-request counts of subscribers that matched, verified and started."""

    matched: int = 0
    verified: int = 0
    started: int = 0

    def classify(self) -> Verdict:
        """Collapse the counters into one verdict.

        Precedence is no-route, then signature mismatch, then server error.
        """
        if self.matched == 0:
            return Verdict.NO_ROUTE
        if self.verified == 0:
            return Verdict.SIGNATURE_MISMATCH
        if self.started == 0:
            return Verdict.SERVER_ERROR
        return Verdict.SUCCESS

    def raise_for_verdict(self) -> None:
        verdict = self.classify()
        error = _VERDICT_ERRORS.get(verdict)
        if error is not None:
            raise error()


class Dispatcher:
    """Resolves a path, verifies each subscriber and launches its command."""

    def __init__(self, routes: RouteTable, launcher: Launcher | None = None) -> None:
        self.routes = routes
        self.launcher = launcher or Launcher()
        self.logger = get_logger("dispatch")

    def dispatch(self, path: str, headers: Mapping[str, str], body: bytes) -> DispatchOutcome:
        """Run every matching hook for ``path`` and return the counters.

        Raises a :class:`RookError` for unknown paths, malformed input and any
        verdict other than success.
        """
        route = self.routes.resolve(path)
        if route is None:
            self.logger.info("No route registered for %s", path)
            raise NoRoute(path)

        if route.kind is HookKind.SOURCE_EVENT:
            outcome = self._dispatch_source_event(route, headers, body)
        elif route.kind is HookKind.GENERIC:
            outcome = self._dispatch_generic(route, headers, body)
        else:  # pragma: no cover - exhaustive over HookKind
            raise AssertionError(f"unhandled hook kind {route.kind!r}")

        self.logger.info(
            "%s %s: matched=%d verified=%d started=%d",
            route.kind.value,
            path,
            outcome.matched,
            outcome.verified,
            outcome.started,
        )
        outcome.raise_for_verdict()
        return outcome

    def _dispatch_source_event(
        self, route: Route, headers: Mapping[str, str], body: bytes
    ) -> DispatchOutcome:
        event = parse_push_event(body)
        claim = self._claim(headers, signature.SOURCE_EVENT_SIGNATURE_HEADER)
        env = event.environment()
        outcome = DispatchOutcome()
        for hook in route.hooks:
            if not isinstance(hook, SourceEventHook) or hook.repo != event.repo:
                continue
            outcome.matched += 1
            if not signature.verify(hook.secret, body, claim):
                continue
            outcome.verified += 1
            if self.launcher.launch(hook.command, env=env):
                outcome.started += 1
        if outcome.matched == 0:
            self.logger.debug("No hook on %s listens for %s", route.path, event.repo)
        return outcome

    def _dispatch_generic(
        self, route: Route, headers: Mapping[str, str], body: bytes
    ) -> DispatchOutcome:
        hooks = [hook for hook in route.hooks if isinstance(hook, GenericHook)]
        modes = {hook.input_mode for hook in hooks}
        args: Sequence[str] = []
        raw_input = ""
        if InputMode.ARGS in modes:
            args = split_command_line(body)
        if InputMode.ENV in modes:
            raw_input = decode_command_line(body)
        claim = self._claim(headers, signature.GENERIC_SIGNATURE_HEADER)

        outcome = DispatchOutcome(matched=len(hooks))
        for hook in hooks:
            if not signature.verify(hook.secret, body, claim):
                continue
            outcome.verified += 1
            if hook.input_mode is InputMode.ENV:
                started = self.launcher.launch(hook.command, env={"ROOK_INPUT": raw_input})
            else:
                started = self.launcher.launch(hook.command, args=args)
            if started:
                outcome.started += 1
        return outcome

    def _claim(self, headers: Mapping[str, str], name: str) -> bytes:
        present = name in headers
        self.logger.debug(
            "Signature header %s %s (length %d)",
            name,
            "present" if present else "absent",
            len(headers.get(name) or ""),
        )
        return signature.extract_claim(headers, name)


__all__ = ["DispatchOutcome", "Dispatcher", "Verdict"]
