import copy
import os
from pathlib import Path
from typing import Any, TypedDict

import tomli
import tomli_w


class DaemonConfig(TypedDict, total=False):
    log_level: str
    request_timeout: float
    startup_timeout: float
    diagnostics_timeout: float
    crash_window: float
    retry_timeouts: bool


class ResolverConfig(TypedDict, total=False):
    tie_break: str


class FormattingConfig(TypedDict, total=False):
    tab_size: int
    insert_spaces: bool


class ServerEntry(TypedDict, total=False):
    name: str
    command: list[str]
    extensions: list[str]
    install_cmd: str
    init_options: dict[str, Any]


class Config(TypedDict, total=False):
    daemon: DaemonConfig
    resolver: ResolverConfig
    formatting: FormattingConfig
    servers: list[ServerEntry]


TIE_BREAK_POLICIES = ("declaration", "prefer_types")

WORKSPACE_CONFIG_NAME = ".lspmux.toml"


def get_cache_dir() -> Path:
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        base = Path(xdg)
    else:
        base = Path.home() / ".cache"
    return base / "lspmux"


def get_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        base = Path(xdg)
    else:
        base = Path.home() / ".config"
    return base / "lspmux"


def get_config_path() -> Path:
    return get_config_dir() / "config.toml"


def get_log_dir() -> Path:
    return get_cache_dir() / "log"


DEFAULT_CONFIG: Config = {
    "daemon": {
        "log_level": "info",
        "request_timeout": 30.0,
        "startup_timeout": 60.0,
        "diagnostics_timeout": 5.0,
        "crash_window": 60.0,
        "retry_timeouts": False,
    },
    "resolver": {
        "tie_break": "declaration",
    },
    "formatting": {
        "tab_size": 4,
        "insert_spaces": True,
    },
    "servers": [],
}


def load_config(workspace_root: Path | None = None) -> Config:
    """Defaults, overlaid by the user config, overlaid by ``<workspace>/.lspmux.toml``."""
    config: dict[str, Any] = copy.deepcopy(dict(DEFAULT_CONFIG))

    sources = [get_config_path()]
    if workspace_root is not None:
        sources.append(workspace_root / WORKSPACE_CONFIG_NAME)

    for path in sources:
        if path.exists():
            with open(path, "rb") as f:
                _merge_config(config, tomli.load(f))

    env_timeout = os.environ.get("LSPMUX_REQUEST_TIMEOUT")
    if env_timeout:
        try:
            config["daemon"]["request_timeout"] = float(env_timeout)
        except ValueError:
            raise ValueError(f"LSPMUX_REQUEST_TIMEOUT must be a number, got {env_timeout!r}")

    tie_break = config["resolver"].get("tie_break", "declaration")
    if tie_break not in TIE_BREAK_POLICIES:
        raise ValueError(
            f"resolver.tie_break must be one of {', '.join(TIE_BREAK_POLICIES)}, got {tie_break!r}"
        )

    return Config(**{k: v for k, v in config.items()})


def save_config(config: Config, path: Path | None = None) -> Path:
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "wb") as f:
        tomli_w.dump(config, f)
    return config_path


def _merge_config(base: dict[str, Any], override: dict[str, Any]) -> None:
    for key, value in override.items():
        if key == "servers" and isinstance(value, list):
            # Entries accumulate; the registry lets later ones win by name
            base[key] = list(base.get(key, [])) + value
        elif key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_config(base[key], value)
        else:
            base[key] = value
