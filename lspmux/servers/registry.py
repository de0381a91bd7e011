import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from ..errors import UnsupportedFileType


def _get_extended_path() -> str:
    home = os.path.expanduser("~")
    extra_paths = [
        f"{home}/.gem/bin",
        f"{home}/go/bin",
        f"{home}/.cargo/bin",
        f"{home}/.local/bin",
        "/usr/local/bin",
        "/opt/homebrew/bin",
    ]
    current_path = os.environ.get("PATH", "")
    return ":".join(extra_paths) + ":" + current_path


@dataclass
class ServerConfig:
    name: str
    command: list[str]
    extensions: list[str]
    install_cmd: str | None = None
    init_options: dict[str, Any] = field(default_factory=dict)


SERVERS: dict[str, list[ServerConfig]] = {
    "typescript": [
        ServerConfig(
            name="typescript-language-server",
            command=["typescript-language-server", "--stdio"],
            extensions=["ts", "tsx", "mts", "cts", "js", "jsx", "mjs", "cjs"],
            install_cmd="npm install -g typescript-language-server typescript",
        ),
    ],
    "python": [
        ServerConfig(
            name="basedpyright",
            command=["basedpyright-langserver", "--stdio"],
            extensions=["py", "pyi"],
            install_cmd="pip install basedpyright",
        ),
        ServerConfig(
            name="pylsp",
            command=["pylsp"],
            extensions=["py", "pyi"],
            install_cmd="pip install python-lsp-server",
        ),
    ],
    "go": [
        ServerConfig(
            name="gopls",
            command=["gopls"],
            extensions=["go"],
            install_cmd="go install golang.org/x/tools/gopls@latest",
        ),
    ],
    "rust": [
        ServerConfig(
            name="rust-analyzer",
            command=["rust-analyzer"],
            extensions=["rs"],
            install_cmd="rustup component add rust-analyzer",
        ),
    ],
    "c": [
        ServerConfig(
            name="clangd",
            command=["clangd"],
            extensions=["c", "h", "cpp", "hpp", "cc", "cxx", "hxx"],
            install_cmd="brew install llvm (macOS) or apt install clangd (Ubuntu)",
        ),
    ],
    "java": [
        ServerConfig(
            name="jdtls",
            command=["jdtls"],
            extensions=["java"],
        ),
    ],
    "ruby": [
        ServerConfig(
            name="solargraph",
            command=["solargraph", "stdio"],
            extensions=["rb", "rake"],
            install_cmd="gem install solargraph",
        ),
    ],
    "php": [
        ServerConfig(
            name="intelephense",
            command=["intelephense", "--stdio"],
            extensions=["php", "phtml"],
            install_cmd="npm install -g intelephense",
        ),
    ],
    "lua": [
        ServerConfig(
            name="lua-language-server",
            command=["lua-language-server"],
            extensions=["lua"],
            install_cmd="brew install lua-language-server",
        ),
    ],
    "zig": [
        ServerConfig(
            name="zls",
            command=["zls"],
            extensions=["zig"],
            install_cmd="brew install zls",
        ),
    ],
}


def normalize_extension(extension: str) -> str:
    return extension.strip().lstrip(".").lower()


def extension_of(path: str | Path) -> str:
    return normalize_extension(Path(path).suffix)


def is_server_installed(server: ServerConfig) -> bool:
    return shutil.which(server.command[0], path=_get_extended_path()) is not None


class ServerRegistry:
    """Server groups keyed by name, each serving a fixed set of extensions.

    A group lists one or more candidate servers; the first installed one is
    used. ``[[servers]]`` config entries replace a group (matched by group or
    server name) or add a new one.
    """

    groups: dict[str, list[ServerConfig]]

    def __init__(self, config: Mapping[str, Any] | None = None):
        self.groups = {name: list(candidates) for name, candidates in SERVERS.items()}
        for entry in (config or {}).get("servers", []) or []:
            self._apply_entry(entry)

    def _apply_entry(self, entry: Mapping[str, Any]) -> None:
        name = entry.get("name")
        command = entry.get("command")
        if not name or not command:
            raise ValueError(f"[[servers]] entries need a name and a command: {dict(entry)}")

        if isinstance(command, str):
            command = command.split()

        group = name
        for group_name, candidates in self.groups.items():
            if name == group_name or any(c.name == name for c in candidates):
                group = group_name
                break

        previous = self.groups.get(group, [])
        extensions = entry.get("extensions")
        if not extensions:
            if not previous:
                raise ValueError(f"[[servers]] entry '{name}' needs extensions")
            extensions = previous[0].extensions

        server = ServerConfig(
            name=name,
            command=list(command),
            extensions=[normalize_extension(e) for e in extensions],
            install_cmd=entry.get("install_cmd"),
            init_options=dict(entry.get("init_options") or {}),
        )

        claimed = set(server.extensions)
        for other_name in list(self.groups):
            if other_name == group:
                continue
            remaining = [
                c for c in self.groups[other_name] if not claimed.intersection(c.extensions)
            ]
            if remaining:
                self.groups[other_name] = remaining
            elif self.groups[other_name]:
                del self.groups[other_name]

        self.groups[group] = [server]

    def group_for_extension(self, extension: str) -> str:
        ext = normalize_extension(extension)
        for name, candidates in self.groups.items():
            if any(ext in c.extensions for c in candidates):
                return name
        raise UnsupportedFileType(ext)

    def group_for_file(self, path: str | Path) -> str:
        return self.group_for_extension(extension_of(path))

    def extensions(self, group: str) -> frozenset[str]:
        return frozenset(ext for c in self.groups[group] for ext in c.extensions)

    def select(self, group: str) -> ServerConfig:
        candidates = self.groups[group]
        for server in candidates:
            if is_server_installed(server):
                return server
        return candidates[0]

    def all_servers(self) -> list[tuple[str, ServerConfig]]:
        return [(name, c) for name, candidates in self.groups.items() for c in candidates]
