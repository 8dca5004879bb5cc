"""Tests for the fan-out dispatcher."""

from __future__ import annotations

import logging
import threading

import pytest

from rook.dispatch import DispatchOutcome, Dispatcher, Verdict
from rook.errors import (
    DispatchFailed,
    MalformedBody,
    MalformedHeader,
    MissingHeader,
    NoRoute,
    SignatureMismatch,
)
from rook.launcher import Launcher
from rook.models import HookKind, InputMode, Route, RouteTable
from rook.signature import GENERIC_SIGNATURE_HEADER, SOURCE_EVENT_SIGNATURE_HEADER, sign
from tests._fixtures.hooks import RecordingSpawner, generic_hook, push_body, source_hook


def _gh_headers(secret: bytes, body: bytes) -> dict[str, str]:
    return {SOURCE_EVENT_SIGNATURE_HEADER: sign(secret, body)}


def _rook_headers(secret: bytes, body: bytes) -> dict[str, str]:
    return {GENERIC_SIGNATURE_HEADER: sign(secret, body)}


@pytest.mark.parametrize(
    "counts, verdict",
    [
        ((0, 0, 0), Verdict.NO_ROUTE),
        ((2, 0, 0), Verdict.SIGNATURE_MISMATCH),
        ((2, 1, 0), Verdict.SERVER_ERROR),
        ((2, 1, 1), Verdict.SUCCESS),
        ((3, 3, 3), Verdict.SUCCESS),
    ],
)
def test_outcome_classification_precedence(counts: tuple[int, int, int], verdict: Verdict) -> None:
    matched, verified, started = counts
    outcome = DispatchOutcome(matched=matched, verified=verified, started=started)

    assert outcome.classify() is verdict


def test_unknown_path_is_no_route(launcher: Launcher) -> None:
    dispatcher = Dispatcher(RouteTable({}), launcher)

    with pytest.raises(NoRoute):
        dispatcher.dispatch("/nowhere", {}, b"")


def test_repository_filter_matching_nobody_is_no_route(
    launcher: Launcher, spawner: RecordingSpawner
) -> None:
    routes = RouteTable(
        {"/gh": [source_hook("a", "/bin/a", b"k"), source_hook("b", "/bin/b", b"k")]}
    )
    body = push_body("c")

    with pytest.raises(NoRoute):
        Dispatcher(routes, launcher).dispatch("/gh", _gh_headers(b"k", body), body)
    assert spawner.requests == []


def test_wrong_secret_is_signature_mismatch(
    launcher: Launcher, spawner: RecordingSpawner, caplog: pytest.LogCaptureFixture
) -> None:
    routes = RouteTable({"/gh": [source_hook("acme/site", "/bin/deploy", b"s1")]})
    body = push_body("acme/site")

    with caplog.at_level(logging.INFO, logger="rook"):
        with pytest.raises(SignatureMismatch):
            Dispatcher(routes, launcher).dispatch("/gh", _gh_headers(b"s2", body), body)

    assert spawner.requests == []
    assert "matched=1 verified=0 started=0" in caplog.text


def test_every_failed_launch_is_server_error(caplog: pytest.LogCaptureFixture) -> None:
    spawner = RecordingSpawner(failing={"/bin/missing"})
    routes = RouteTable({"/gh": [source_hook("acme/site", "/bin/missing", b"k")]})
    body = push_body("acme/site")

    with caplog.at_level(logging.INFO, logger="rook"):
        with pytest.raises(DispatchFailed):
            Dispatcher(routes, Launcher(spawner=spawner)).dispatch(
                "/gh", _gh_headers(b"k", body), body
            )

    assert spawner.commands == ["/bin/missing"]
    assert "matched=1 verified=1 started=0" in caplog.text


def test_missing_repository_name_is_malformed_body_even_when_signed(
    launcher: Launcher, spawner: RecordingSpawner
) -> None:
    routes = RouteTable({"/gh": [source_hook("acme/site", "/bin/deploy", b"k")]})
    body = b'{"ref": "refs/heads/main", "after": "abc", "repository": {"name": "site"}}'

    with pytest.raises(MalformedBody):
        Dispatcher(routes, launcher).dispatch("/gh", _gh_headers(b"k", body), body)
    assert spawner.requests == []


def test_body_is_parsed_before_signature_header(launcher: Launcher) -> None:
    routes = RouteTable({"/gh": [source_hook("acme/site", "/bin/deploy", b"k")]})

    with pytest.raises(MalformedBody):
        Dispatcher(routes, launcher).dispatch("/gh", {}, b"not json")


def test_missing_and_malformed_signature_headers(launcher: Launcher) -> None:
    routes = RouteTable({"/gh": [source_hook("acme/site", "/bin/deploy", b"k")]})
    dispatcher = Dispatcher(routes, launcher)
    body = push_body("acme/site")

    with pytest.raises(MissingHeader):
        dispatcher.dispatch("/gh", {}, body)
    with pytest.raises(MalformedHeader):
        dispatcher.dispatch("/gh", {SOURCE_EVENT_SIGNATURE_HEADER: "sha256=abc"}, body)
    # the generic header does not satisfy a source-event route
    with pytest.raises(MissingHeader):
        dispatcher.dispatch("/gh", _rook_headers(b"k", body), body)


def test_source_event_fans_out_to_every_verified_subscriber(
    launcher: Launcher, spawner: RecordingSpawner
) -> None:
    routes = RouteTable(
        {
            "/gh": [
                source_hook("acme/site", "/bin/build", b"k1"),
                source_hook("acme/other", "/bin/other", b"k1"),
                source_hook("acme/site", "/bin/notify", b"k2"),
                source_hook("acme/site", "/bin/archive", b"k1"),
            ]
        }
    )
    body = push_body("acme/site", ref="refs/heads/main", commit="abc123")

    outcome = Dispatcher(routes, launcher).dispatch("/gh", _gh_headers(b"k1", body), body)

    assert (outcome.matched, outcome.verified, outcome.started) == (3, 2, 2)
    assert spawner.commands == ["/bin/build", "/bin/archive"]
    env = spawner.requests[0].env
    assert env["GITHUB_REPO"] == "acme/site"
    assert env["GITHUB_COMMIT"] == "abc123"
    assert env["GITHUB_REF"] == "refs/heads/main"
    assert spawner.requests[0].args == []


def test_one_failed_launch_does_not_stop_the_fan_out() -> None:
    spawner = RecordingSpawner(failing={"/bin/first"})
    routes = RouteTable(
        {
            "/gh": [
                source_hook("acme/site", "/bin/first", b"k"),
                source_hook("acme/site", "/bin/second", b"k"),
            ]
        }
    )
    body = push_body("acme/site")

    outcome = Dispatcher(routes, Launcher(spawner=spawner)).dispatch(
        "/gh", _gh_headers(b"k", body), body
    )

    assert spawner.commands == ["/bin/first", "/bin/second"]
    assert (outcome.matched, outcome.verified, outcome.started) == (2, 2, 1)


def test_generic_hook_passes_tokens_as_arguments(
    launcher: Launcher, spawner: RecordingSpawner
) -> None:
    routes = RouteTable({"/run": [generic_hook("/bin/runner", b"k")]})
    body = b'deploy --env prod "release 1.2"\n'

    outcome = Dispatcher(routes, launcher).dispatch("/run", _rook_headers(b"k", body), body)

    assert outcome.started == 1
    assert spawner.requests[0].argv == ["/bin/runner", "deploy", "--env", "prod", "release 1.2"]
    assert spawner.requests[0].env.get("ROOK_INPUT") is None


def test_generic_hook_env_mode_passes_trimmed_body(
    launcher: Launcher, spawner: RecordingSpawner
) -> None:
    routes = RouteTable({"/run": [generic_hook("/bin/runner", b"k", InputMode.ENV)]})
    body = b"  restart 'web worker'  \n"

    Dispatcher(routes, launcher).dispatch("/run", _rook_headers(b"k", body), body)

    request = spawner.requests[0]
    assert request.args == []
    assert request.env["ROOK_INPUT"] == "restart 'web worker'"


def test_generic_hook_rejects_unbalanced_quotes_before_verifying(
    launcher: Launcher, spawner: RecordingSpawner
) -> None:
    routes = RouteTable({"/run": [generic_hook("/bin/runner", b"k")]})
    body = b'deploy "half'

    with pytest.raises(MalformedBody):
        Dispatcher(routes, launcher).dispatch("/run", {}, body)
    assert spawner.requests == []


def test_generic_hooks_verify_independently(
    launcher: Launcher, spawner: RecordingSpawner
) -> None:
    routes = RouteTable(
        {"/run": [generic_hook("/bin/one", b"k1"), generic_hook("/bin/two", b"k2")]}
    )
    body = b"go"

    outcome = Dispatcher(routes, launcher).dispatch("/run", _rook_headers(b"k2", body), body)

    assert (outcome.matched, outcome.verified, outcome.started) == (2, 1, 1)
    assert spawner.commands == ["/bin/two"]

    with pytest.raises(SignatureMismatch):
        Dispatcher(routes, launcher).dispatch("/run", _rook_headers(b"k3", body), body)


def test_secrets_and_signatures_never_reach_the_log(
    launcher: Launcher, caplog: pytest.LogCaptureFixture
) -> None:
    secret = b"do-not-log-this-secret"
    routes = RouteTable({"/gh": [source_hook("acme/site", "/bin/deploy", secret)]})
    body = push_body("acme/site")
    headers = _gh_headers(secret, body)

    with caplog.at_level(logging.DEBUG, logger="rook"):
        Dispatcher(routes, launcher).dispatch("/gh", headers, body)

    assert secret.decode() not in caplog.text
    assert headers[SOURCE_EVENT_SIGNATURE_HEADER][7:] not in caplog.text
    assert "present (length 71)" in caplog.text


def test_concurrent_dispatches_on_different_paths_do_not_interfere() -> None:
    spawner = RecordingSpawner()
    routes = RouteTable(
        {
            "/a": [generic_hook("/bin/a", b"secret-a")],
            "/b": [generic_hook("/bin/b", b"secret-b")],
        }
    )
    dispatcher = Dispatcher(routes, Launcher(spawner=spawner))
    results: dict[str, list[tuple[int, int, int]]] = {"/a": [], "/b": []}
    errors: list[BaseException] = []

    def worker(path: str, secret: bytes) -> None:
        for index in range(50):
            body = f"{path} {index}".encode()
            try:
                outcome = dispatcher.dispatch(path, _rook_headers(secret, body), body)
            except BaseException as exc:  # pragma: no cover - surfaced below
                errors.append(exc)
                return
            results[path].append((outcome.matched, outcome.verified, outcome.started))

    threads = [
        threading.Thread(target=worker, args=("/a", b"secret-a")),
        threading.Thread(target=worker, args=("/b", b"secret-b")),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert results["/a"] == [(1, 1, 1)] * 50
    assert results["/b"] == [(1, 1, 1)] * 50
    for request in spawner.requests:
        expected_path = "/a" if request.command == "/bin/a" else "/b"
        assert request.args[0] == expected_path


class _FixedRoutes(RouteTable):
    """Route table answering every path with one prebuilt route."""

    def __init__(self, route: Route) -> None:
        super().__init__({})
        self._route = route

    def resolve(self, path: str) -> Route:
        return self._route


def test_hooks_of_another_kind_are_skipped(
    launcher: Launcher, spawner: RecordingSpawner
) -> None:
    source = source_hook("acme/site", "/bin/source", b"k")
    generic = generic_hook("/bin/generic", b"k")
    body = push_body("acme/site")

    generic_route = Route(path="/run", kind=HookKind.GENERIC, hooks=(source, generic))
    outcome = Dispatcher(_FixedRoutes(generic_route), launcher).dispatch(
        "/run", _rook_headers(b"k", body), body
    )
    assert (outcome.matched, outcome.verified, outcome.started) == (1, 1, 1)

    source_route = Route(path="/gh", kind=HookKind.SOURCE_EVENT, hooks=(generic, source))
    outcome = Dispatcher(_FixedRoutes(source_route), launcher).dispatch(
        "/gh", _gh_headers(b"k", body), body
    )
    assert (outcome.matched, outcome.verified, outcome.started) == (1, 1, 1)

    assert spawner.commands == ["/bin/generic", "/bin/source"]
