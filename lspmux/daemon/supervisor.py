import asyncio
import logging
import os
import time
from collections.abc import Coroutine
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from ..errors import (
    LanguageServerNotFound,
    LanguageServerStartupError,
    ServerRestarted,
    ServerUnavailable,
)
from ..lsp.client import LSPClient
from ..lsp.types import DidChangeWatchedFilesParams, FileChangeType, FileEvent
from ..servers.registry import ServerConfig, ServerRegistry, _get_extended_path, extension_of
from ..utils.config import Config, get_log_dir
from ..utils.text import get_language_id, read_file_content
from ..utils.uri import path_to_uri

logger = logging.getLogger(__name__)


class ServerState(str, Enum):
    STARTING = "Starting"
    READY = "Ready"
    DEGRADED = "Degraded"
    CRASHED = "Crashed"
    STOPPED = "Stopped"


@dataclass
class OpenDocument:
    uri: str
    version: int
    content: str
    language_id: str


@dataclass
class ServerInstance:
    group: str
    server_config: ServerConfig
    extensions: frozenset[str]
    root: Path
    state: ServerState = ServerState.STARTING
    client: LSPClient | None = None
    open_documents: dict[str, OpenDocument] = field(default_factory=dict)
    crash_times: list[float] = field(default_factory=list)
    generation: int = 0
    ever_ready: bool = False
    startup: asyncio.Task[None] | None = None
    startup_error: ServerUnavailable | None = None
    last_error: str | None = None
    on_document_open: Callable[[str], None] | None = None
    _versions: dict[str, int] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.server_config.name

    def require_client(self) -> LSPClient:
        if self.client is None or self.state is not ServerState.READY:
            raise ServerUnavailable(f"{self.name} is not ready ({self.state.value})")
        return self.client

    def document_text(self, path: Path) -> str | None:
        doc = self.open_documents.get(path_to_uri(path))
        return doc.content if doc else None

    def document_version(self, path: Path) -> int | None:
        doc = self.open_documents.get(path_to_uri(path))
        return doc.version if doc else None

    async def ensure_document_open(self, path: Path) -> OpenDocument:
        client = self.require_client()
        uri = path_to_uri(path)
        current_content = read_file_content(path)

        if uri in self.open_documents:
            doc = self.open_documents[uri]
            if current_content == doc.content:
                return doc
            # Full reopen instead of didChange since the edits are unknown
            await self.close_document(path)

        version = self._versions.get(uri, 0) + 1
        self._versions[uri] = version
        language_id = get_language_id(path)
        doc = OpenDocument(uri=uri, version=version, content=current_content, language_id=language_id)
        self.open_documents[uri] = doc

        if self.on_document_open is not None:
            self.on_document_open(uri)

        await client.send_notification(
            "textDocument/didOpen",
            {
                "textDocument": {
                    "uri": uri,
                    "languageId": language_id,
                    "version": version,
                    "text": current_content,
                }
            },
        )
        return doc

    async def close_document(self, path: Path) -> None:
        uri = path_to_uri(path)
        if uri not in self.open_documents:
            return

        del self.open_documents[uri]

        if self.client is not None and self.state is ServerState.READY:
            await self.client.send_notification(
                "textDocument/didClose",
                {"textDocument": {"uri": uri}},
            )

    async def notify_files_changed(self, changes: list[tuple[Path, FileChangeType]]) -> None:
        if self.client is None or self.state is not ServerState.READY or not changes:
            return

        file_events = [
            FileEvent(uri=path_to_uri(path), type=change_type.value)
            for path, change_type in changes
        ]
        await self.client.send_notification(
            "workspace/didChangeWatchedFiles",
            DidChangeWatchedFilesParams(changes=file_events).model_dump(),
        )

    def describe(self) -> dict[str, Any]:
        return {
            "group": self.group,
            "server": self.name,
            "extensions": sorted(self.extensions),
            "state": self.state.value,
            "pid": self.client.process.pid if self.client is not None else None,
            "generation": self.generation,
            "pending": len(self.client.pending) if self.client is not None else 0,
            "open_documents": list(self.open_documents.keys()),
            "last_error": self.last_error,
        }


class Supervisor:
    """Owns at most one server instance per server group."""

    root: Path
    config: Config
    registry: ServerRegistry
    request_timeout: float
    startup_timeout: float
    crash_window: float
    _instances: dict[str, ServerInstance]
    _lock: asyncio.Lock
    _background: set[asyncio.Task[Any]]

    def __init__(self, root: Path, config: Config, diagnostics: Any = None):
        self.root = root.resolve()
        self.config = config
        self.registry = ServerRegistry(config)
        self.diagnostics = diagnostics
        daemon = config.get("daemon", {})
        self.request_timeout = float(daemon.get("request_timeout", 30.0))
        self.startup_timeout = float(daemon.get("startup_timeout", 60.0))
        self.crash_window = float(daemon.get("crash_window", 60.0))
        self._instances = {}
        self._lock = asyncio.Lock()
        self._background = set()

    @property
    def instances(self) -> list[ServerInstance]:
        return list(self._instances.values())

    def ready_instances(self) -> list[ServerInstance]:
        return [i for i in self._instances.values() if i.state is ServerState.READY]

    async def acquire(self, extension: str, wait_recovery: bool = False) -> ServerInstance:
        group = self.registry.group_for_extension(extension)

        async with self._lock:
            instance = self._instances.get(group)
            if instance is None:
                server_config = self.registry.select(group)
                instance = ServerInstance(
                    group=group,
                    server_config=server_config,
                    extensions=self.registry.extensions(group),
                    root=self.root,
                )
                if self.diagnostics is not None:
                    instance.on_document_open = self.diagnostics.invalidate
                self._instances[group] = instance
                instance.startup = self._spawn_task(self._start(instance))

        return await self._await_ready(instance, wait_recovery)

    async def acquire_for_file(self, path: Path, wait_recovery: bool = False) -> ServerInstance:
        return await self.acquire(extension_of(path), wait_recovery=wait_recovery)

    async def _await_ready(self, instance: ServerInstance, wait_recovery: bool) -> ServerInstance:
        if instance.state is ServerState.READY:
            return instance

        if instance.state is ServerState.CRASHED:
            reason = f": {instance.last_error}" if instance.last_error else ""
            raise ServerUnavailable(
                f"{instance.name} crashed and will not be restarted automatically{reason}. "
                "Use restart_server to start it again."
            )

        if instance.state is ServerState.DEGRADED and not wait_recovery:
            raise ServerUnavailable(f"{instance.name} crashed and is restarting, retry shortly")

        if instance.startup is not None:
            await asyncio.shield(instance.startup)

        if instance.state is ServerState.READY:
            return instance
        if instance.startup_error is not None:
            raise instance.startup_error
        raise ServerUnavailable(f"{instance.name} is not available ({instance.state.value})")

    async def restart(self, extensions: list[str] | None = None) -> list[str]:
        if extensions:
            groups = list(dict.fromkeys(self.registry.group_for_extension(e) for e in extensions))
        else:
            groups = list(self._instances)

        async with self._lock:
            targets = [self._instances[g] for g in groups if g in self._instances]

        startups = []
        for instance in targets:
            if instance.startup is not None and not instance.startup.done():
                await asyncio.wait({instance.startup})

            old = instance.client
            instance.client = None
            if old is not None:
                failed = old.fail_pending(
                    lambda p, name=instance.name: ServerRestarted(
                        f"{name} was restarted while handling {p.method}; retry the call"
                    )
                )
                if failed:
                    logger.info(f"Cancelled {failed} pending request(s) on {instance.name}")

            instance.crash_times.clear()
            instance.last_error = None
            instance.startup_error = None
            instance.state = ServerState.STARTING
            logger.info(f"Restarting {instance.name}")
            instance.startup = self._spawn_task(self._start(instance, previous=old))
            startups.append(instance.startup)

        if startups:
            await asyncio.wait(startups)

        return [instance.group for instance in targets]

    async def shutdown(self) -> None:
        async with self._lock:
            instances = list(self._instances.values())
            self._instances.clear()

        for instance in instances:
            if instance.startup is not None and not instance.startup.done():
                instance.startup.cancel()
                await asyncio.wait({instance.startup})
            instance.state = ServerState.STOPPED
            client = instance.client
            instance.client = None
            instance.open_documents.clear()
            if client is not None:
                client.fail_pending(
                    lambda p, name=instance.name: ServerUnavailable(
                        f"{name} shut down before answering {p.method}"
                    )
                )
                logger.info(f"Stopping {instance.name}")
                await client.stop()

        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.wait(self._background)

    def describe(self) -> list[dict[str, Any]]:
        return [instance.describe() for instance in self._instances.values()]

    def _spawn_task(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _start(self, instance: ServerInstance, previous: LSPClient | None = None) -> None:
        if previous is not None:
            try:
                await previous.stop()
            except Exception as e:
                logger.warning(f"Error stopping previous {instance.name}: {e}")

        try:
            await self._spawn(instance)
        except ServerUnavailable as e:
            error: ServerUnavailable = e
        except Exception as e:
            error = LanguageServerStartupError(instance.name, e)
        else:
            return

        instance.startup_error = error
        instance.last_error = str(error).splitlines()[0]
        logger.error(f"Failed to start {instance.name}: {instance.last_error}")

        if instance.ever_ready:
            instance.state = ServerState.CRASHED
        else:
            instance.state = ServerState.STOPPED
            # Never became ready: forget it so the next call tries again
            if self._instances.get(instance.group) is instance:
                del self._instances[instance.group]

    async def _spawn(self, instance: ServerInstance) -> None:
        server_config = instance.server_config
        instance.generation += 1
        instance.open_documents.clear()
        logger.info(
            f"Starting {server_config.name} for {self.root} (generation {instance.generation})"
        )

        process = await self.spawn_process(instance)

        log_file = get_log_dir() / f"{server_config.name}.log"
        client = LSPClient(
            process,
            path_to_uri(self.root),
            server_config.init_options,
            server_name=server_config.name,
            log_file=log_file,
            request_timeout=self.request_timeout,
            on_exit=lambda c: self._handle_exit(instance, c),
        )
        if self.diagnostics is not None:
            self.diagnostics.attach(client)

        instance.client = client
        try:
            await client.start(timeout=self.startup_timeout)
        except Exception as e:
            instance.client = None
            await client.stop()
            raise LanguageServerStartupError(
                server_config.name,
                e,
                server_log=_read_log_tail(log_file),
                log_path=str(log_file),
            )

        instance.state = ServerState.READY
        instance.ever_ready = True
        logger.info(f"Server {server_config.name} initialized and ready")

    async def spawn_process(self, instance: ServerInstance) -> asyncio.subprocess.Process:
        server_config = instance.server_config
        env = os.environ.copy()
        env["PATH"] = _get_extended_path()

        try:
            return await asyncio.create_subprocess_exec(
                *server_config.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.root),
                env=env,
            )
        except FileNotFoundError:
            raise LanguageServerNotFound(
                server_config.name, sorted(instance.extensions), server_config.install_cmd
            )

    def _handle_exit(self, instance: ServerInstance, client: LSPClient) -> None:
        # Startup failures and deliberate stops are handled by their callers
        if instance.client is not client or instance.state is not ServerState.READY:
            return

        now = time.monotonic()
        instance.crash_times = [t for t in instance.crash_times if now - t <= self.crash_window]
        instance.crash_times.append(now)
        instance.client = None
        instance.open_documents.clear()

        failed = client.fail_pending(
            lambda p: ServerRestarted(
                f"{instance.name} crashed while handling {p.method}; retry the call",
                crashed=True,
            )
        )
        logger.error(
            f"{instance.name} exited unexpectedly (code {client.process.returncode}), "
            f"{failed} pending request(s) failed"
        )

        if len(instance.crash_times) > 1:
            instance.state = ServerState.CRASHED
            instance.last_error = (
                f"crashed {len(instance.crash_times)} times within {self.crash_window:g}s"
            )
            instance.startup = None
            self._spawn_task(client.stop())
            logger.error(f"{instance.name} marked as crashed, not restarting")
            return

        instance.state = ServerState.DEGRADED
        instance.startup_error = None
        instance.startup = self._spawn_task(self._start(instance, previous=client))


def _read_log_tail(log_file: Path, lines: int = 30) -> str | None:
    if not log_file.exists():
        return None
    try:
        content = log_file.read_text(errors="replace")
    except OSError:
        return None
    return "\n".join(content.strip().splitlines()[-lines:])
