"""Launch commands as detached processes that outlive the request."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence

from .logging import get_logger

# Exit status of the intermediate process when the target could not start.
_SPAWN_FAILED = 1


@dataclass
class LaunchRequest:
    """Everything needed to start one hook command."""

    command: str
    args: Sequence[str]
    env: Mapping[str, str]
    inherit_output: bool = False

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


class Launcher:
    """Starts hook commands without keeping a handle on them.

    The default spawner double-detaches: it forks an intermediate process
    which starts a new session, spawns the command and exits at once. The
    server only reaps the intermediate, so the command is re-parented to init
    and never waited on.

    The fork happens on an executor thread of a multi-threaded server. The
    intermediate only calls ``setsid`` and ``subprocess.Popen`` (whose
    fork/exec runs in C without taking Python-level locks) before
    ``os._exit``; it never logs, imports or touches shared state, so locks
    held by other threads at fork time are never needed in the child.
    Python 3.12+ still emits a ``DeprecationWarning`` for such forks.
    """

    def __init__(
        self,
        *,
        inherit_output: bool = False,
        spawner: Callable[[LaunchRequest], bool] | None = None,
    ) -> None:
        self.inherit_output = inherit_output
        self._spawner = spawner or self._detached_spawner
        self.logger = get_logger("launcher")

    def launch(
        self,
        command: str,
        *,
        env: Optional[Mapping[str, str]] = None,
        args: Sequence[str] = (),
    ) -> bool:
        """Start ``command`` detached and report whether it started.

        ``env`` entries are added on top of the server's own environment.
        ``args`` become the command's argument vector verbatim.
        """
        child_env = dict(os.environ)
        if env:
            child_env.update(env)
        request = LaunchRequest(
            command=command,
            args=list(args),
            env=child_env,
            inherit_output=self.inherit_output,
        )
        try:
            started = self._spawner(request)
        except OSError as exc:
            self.logger.warning("Failed to fork for %s: %s", command, exc.strerror or exc)
            return False
        if not started:
            self.logger.warning("Command %s could not be started", command)
        return started

    @staticmethod
    def _detached_spawner(request: LaunchRequest) -> bool:
        pid = os.fork()
        if pid == 0:
            # Intermediate process: nothing here may return into the server.
            try:
                os.setsid()
                output = None if request.inherit_output else subprocess.DEVNULL
                subprocess.Popen(
                    request.argv,
                    env=dict(request.env),
                    stdin=subprocess.DEVNULL,
                    stdout=output,
                    stderr=output,
                    close_fds=True,
                )
            except BaseException:
                os._exit(_SPAWN_FAILED)
            os._exit(0)
        _, wait_status = os.waitpid(pid, 0)
        return os.waitstatus_to_exitcode(wait_status) == 0


__all__ = ["LaunchRequest", "Launcher"]
