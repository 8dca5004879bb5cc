"""Configuration loading for rook (YAML route table)."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .logging import get_logger
from .models import GenericHook, HookKind, HookSubscription, InputMode, RouteTable, SourceEventHook

DEFAULT_ADDR = "0.0.0.0"

logger = get_logger("config")


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be loaded."""


@dataclass
class RookConfig:
    """Listener settings and the route table built from the config file."""

    addr: str
    port: int
    routes: RouteTable
    inherit_output: bool = False
    source: Optional[Path] = None


@dataclass
class _HookEntry:
    kind: HookKind
    url: str
    hook: HookSubscription


def load_config(config_path: Path) -> RookConfig:
    """Load the listener settings and route table from ``config_path``."""
    config_file = Path(config_path).expanduser().resolve()
    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    addr = _parse_addr(data.get("addr", DEFAULT_ADDR))
    port = _parse_port(data.get("port"))
    inherit_output = _as_bool(data.get("inherit_output"))
    if inherit_output is None:
        inherit_output = False

    hooks_data = data.get("hooks")
    if hooks_data is None:
        hooks_data = []
    if not isinstance(hooks_data, list):
        raise ConfigError("'hooks' must be a list")

    base_dir = config_file.parent
    source_routes: Dict[str, List[HookSubscription]] = {}
    generic_routes: Dict[str, List[HookSubscription]] = {}
    for index, raw in enumerate(hooks_data):
        entry = _parse_hook(raw, index, base_dir)
        if entry.kind is HookKind.SOURCE_EVENT:
            if entry.url in generic_routes:
                raise ConfigError(f"hook path type conflict: '{entry.url}'")
            source_routes.setdefault(entry.url, []).append(entry.hook)
        else:
            if entry.url in source_routes:
                raise ConfigError(f"hook path type conflict: '{entry.url}'")
            generic_routes.setdefault(entry.url, []).append(entry.hook)

    routes = RouteTable({**source_routes, **generic_routes})
    config = RookConfig(
        addr=addr,
        port=port,
        routes=routes,
        inherit_output=inherit_output,
        source=config_file,
    )
    _debug_routes(config)
    return config


def read_secret(path: Path) -> bytes:
    """Read a shared secret from ``path``, stripping surrounding whitespace."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"failed to read secret at '{path}'") from exc
    secret = text.strip().encode("utf-8")
    if not secret:
        raise ConfigError(f"secret at '{path}' is empty")
    return secret


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"failed to read config at '{path}': {exc.strerror or exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _parse_hook(raw: Any, index: int, base_dir: Path) -> _HookEntry:
    where = f"hooks[{index}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"{where} must be a mapping")

    type_name = _as_str(raw.get("type"))
    try:
        kind = HookKind(type_name)
    except ValueError:
        raise ConfigError(f"{where}: unknown hook type {type_name!r}") from None

    url = _require_str(raw, "url", where)
    if not url.startswith("/"):
        raise ConfigError(f"{where}: url must start with '/'")
    command = _require_str(raw, "command_path", where)
    secret_file = Path(_require_str(raw, "secret_file", where)).expanduser()
    if not secret_file.is_absolute():
        secret_file = base_dir / secret_file
    secret = read_secret(secret_file)

    if kind is HookKind.SOURCE_EVENT:
        repo = _require_str(raw, "repo", where)
        hook: HookSubscription = SourceEventHook(repo=repo, command=command, secret=secret)
    else:
        mode_name = _as_str(raw.get("input")) or InputMode.ARGS.value
        try:
            mode = InputMode(mode_name)
        except ValueError:
            raise ConfigError(f"{where}: input must be 'args' or 'env'") from None
        hook = GenericHook(command=command, secret=secret, input_mode=mode)
    return _HookEntry(kind=kind, url=url, hook=hook)


def _parse_addr(value: Any) -> str:
    text = _as_str(value)
    if text is None:
        raise ConfigError("'addr' must be an IP address")
    try:
        return str(ipaddress.ip_address(text))
    except ValueError:
        raise ConfigError(f"invalid listen address {text!r}") from None


def _parse_port(value: Any) -> int:
    port = _as_int(value)
    if port is None:
        raise ConfigError("'port' is required and must be an integer")
    if not 0 <= port <= 65535:
        raise ConfigError(f"port {port} is out of range")
    return port


def _debug_routes(config: RookConfig) -> None:
    logger.debug("loaded config:")
    logger.debug("port %d with %d routes", config.port, len(config.routes))
    for route in config.routes:
        logger.debug("%3d %-6s %s", len(route.hooks), route.kind.value, route.path)


def _require_str(data: Dict[str, Any], key: str, where: str) -> str:
    value = _as_str(data.get(key))
    if not value:
        raise ConfigError(f"{where}: missing required key '{key}'")
    return value


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        return str(value)
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None
