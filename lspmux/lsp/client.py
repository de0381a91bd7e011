import asyncio
import logging
import os
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, TextIO

from pydantic import BaseModel, ValidationError

from ..errors import RequestTimeout, ServerUnavailable, UnderlyingProtocolError
from .capabilities import get_client_capabilities
from .protocol import LSPProtocolError, encode_message, read_message
from .types import (
    ClientCapabilities,
    InitializeParams,
    ServerCapabilities,
    WorkspaceFolder,
)

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0

NotificationHandler = Callable[[dict[str, Any] | None], Awaitable[None]]


@dataclass
class PendingRequest:
    id: int
    method: str
    tool: str | None
    created_at: float
    future: asyncio.Future[Any]

    @property
    def age(self) -> float:
        return time.monotonic() - self.created_at


class LSPClient:
    process: asyncio.subprocess.Process
    workspace_root: str
    init_options: dict[str, Any]
    server_name: str
    log_file: Path | None
    request_timeout: float
    _request_id: int
    _pending_requests: dict[int, PendingRequest]
    _reader_task: asyncio.Task[None] | None
    _stderr_task: asyncio.Task[None] | None
    _initialized: bool
    _closing: bool
    _closed_error: BaseException | None
    _server_capabilities: ServerCapabilities
    _notification_handlers: dict[str, NotificationHandler]
    _on_exit: Callable[["LSPClient"], None] | None
    _write_lock: asyncio.Lock
    _log_handle: TextIO | None
    _active_progress_tokens: set[str | int]
    _indexing_done: asyncio.Event

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        workspace_root: str,
        init_options: dict[str, Any] | None = None,
        server_name: str = "language server",
        log_file: Path | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        on_exit: Callable[["LSPClient"], None] | None = None,
    ):
        self.process = process
        self.workspace_root = workspace_root
        self.init_options = init_options or {}
        self.server_name = server_name
        self.log_file = log_file
        self.request_timeout = request_timeout
        self._request_id = 0
        self._pending_requests = {}
        self._reader_task = None
        self._stderr_task = None
        self._initialized = False
        self._closing = False
        self._closed_error = None
        self._server_capabilities = ServerCapabilities()
        self._notification_handlers = {}
        self._on_exit = on_exit
        self._write_lock = asyncio.Lock()
        self._log_handle = None
        self._active_progress_tokens = set()
        self._indexing_done = asyncio.Event()
        self._indexing_done.set()

    @property
    def stdin(self) -> asyncio.StreamWriter:
        assert self.process.stdin is not None
        return self.process.stdin

    @property
    def stdout(self) -> asyncio.StreamReader:
        assert self.process.stdout is not None
        return self.process.stdout

    @property
    def capabilities(self) -> ServerCapabilities:
        return self._server_capabilities

    @property
    def pending(self) -> list[PendingRequest]:
        return list(self._pending_requests.values())

    @property
    def is_running(self) -> bool:
        return self._closed_error is None and not self._closing

    async def start(self, timeout: float | None = None) -> None:
        self._reader_task = asyncio.create_task(self._read_loop())
        if self.process.stderr:
            if self.log_file:
                self.log_file.parent.mkdir(parents=True, exist_ok=True)
                self._log_handle = open(self.log_file, "a")
            self._stderr_task = asyncio.create_task(self._drain_stderr())
        await self._initialize(timeout)

    async def _drain_stderr(self) -> None:
        try:
            while True:
                assert self.process.stderr is not None
                data = await self.process.stderr.read(4096)
                if not data:
                    break
                text = data.decode(errors="replace")
                if self._log_handle:
                    self._log_handle.write(text)
                    self._log_handle.flush()
                logger.debug(f"Server stderr: {text[:200]}")
        except (OSError, ValueError) as e:
            logger.debug(f"Stopped draining stderr of {self.server_name}: {e}")
        finally:
            if self._log_handle:
                self._log_handle.close()
                self._log_handle = None

    async def stop(self) -> None:
        self._closing = True
        if self._initialized and self._closed_error is None and self.process.returncode is None:
            try:
                await asyncio.wait_for(self.send_request("shutdown", None), timeout=5.0)
                await self.send_notification("exit", None)
            except Exception as e:
                logger.warning(f"Error during shutdown of {self.server_name}: {e}")

        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass

        self.fail_pending(
            lambda p: ServerUnavailable(f"{self.server_name} was stopped before answering {p.method}")
        )

        if self.process.returncode is None:
            try:
                self.process.terminate()
                await asyncio.wait_for(self.process.wait(), timeout=5.0)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                self.process.kill()
                await self.process.wait()

        if self._stderr_task:
            self._stderr_task.cancel()
            try:
                await self._stderr_task
            except asyncio.CancelledError:
                pass

    async def _initialize(self, timeout: float | None) -> None:
        init_params = InitializeParams(
            processId=os.getpid(),
            rootUri=self.workspace_root,
            rootPath=self.workspace_root.replace("file://", ""),
            capabilities=ClientCapabilities.model_validate(get_client_capabilities()),
            workspaceFolders=[
                WorkspaceFolder(
                    uri=self.workspace_root, name=self.workspace_root.split("/")[-1]
                )
            ],
            initializationOptions=self.init_options if self.init_options else None,
        )

        result = await self.send_request("initialize", init_params, timeout=timeout)
        self._server_capabilities = result.capabilities
        await self.send_notification("initialized", {})
        self._initialized = True

    async def send_request(
        self,
        method: str,
        params: Any,
        timeout: float | None = None,
        tool: str | None = None,
    ) -> Any:
        if self._closed_error is not None:
            raise ServerUnavailable(f"{self.server_name} is not running")

        self._request_id += 1
        request_id = self._request_id

        params_dict: dict[str, Any] | list[Any] | None
        if params is None:
            params_dict = None
        elif isinstance(params, BaseModel):
            params_dict = params.model_dump(exclude_none=True, by_alias=True)
        else:
            params_dict = params

        message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params_dict is not None:
            message["params"] = params_dict

        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        self._pending_requests[request_id] = PendingRequest(
            id=request_id,
            method=method,
            tool=tool,
            created_at=time.monotonic(),
            future=future,
        )

        logger.debug(f"LSP REQUEST [{request_id}] {method}: {params_dict}")
        try:
            await self._write(message)
        except OSError as e:
            self._pending_requests.pop(request_id, None)
            raise ServerUnavailable(f"{self.server_name}: could not send {method}: {e}")

        wait = timeout or self.request_timeout
        try:
            raw_result = await asyncio.wait_for(future, timeout=wait)
        except asyncio.TimeoutError:
            self._pending_requests.pop(request_id, None)
            raise RequestTimeout(method, wait)

        return _parse_response(method, raw_result)

    async def send_notification(
        self, method: str, params: dict[str, Any] | list[Any] | None
    ) -> None:
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params

        try:
            await self._write(message)
        except OSError as e:
            raise ServerUnavailable(f"{self.server_name}: could not send {method}: {e}")

        logger.debug(f"LSP NOTIFICATION {method}: {params}")

    async def _write(self, message: dict[str, Any]) -> None:
        encoded = encode_message(message)
        async with self._write_lock:
            self.stdin.write(encoded)
            await self.stdin.drain()

    def fail_pending(self, make_error: Callable[[PendingRequest], BaseException]) -> int:
        """Fail every outstanding request. Returns how many were failed."""
        pending = list(self._pending_requests.values())
        self._pending_requests.clear()
        for request in pending:
            if not request.future.done():
                request.future.set_exception(make_error(request))
        return len(pending)

    async def _read_loop(self) -> None:
        try:
            while True:
                message = await read_message(self.stdout)
                logger.debug(
                    f"Received message: id={message.get('id')}, method={message.get('method')}"
                )
                await self._handle_message(message)
        except LSPProtocolError as e:
            if self._closing:
                logger.debug(f"{self.server_name} channel closed during stop: {e}")
            else:
                logger.error(f"{self.server_name} channel closed: {e}")
            self._channel_closed(e)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Error in read loop: {e}")
            self._channel_closed(e)

    def _channel_closed(self, error: BaseException) -> None:
        self._closed_error = error
        if not self._closing and self._on_exit is not None:
            self._on_exit(self)
        self.fail_pending(
            lambda p: ServerUnavailable(f"{self.server_name} exited before answering {p.method}")
        )

    async def _handle_message(self, message: dict[str, Any]) -> None:
        if "id" in message:
            if "method" in message:
                await self._handle_server_request(message)
            else:
                self._handle_response(message)
        elif "method" in message:
            await self._handle_notification(message)
        else:
            logger.warning(f"Dropping message without id or method: {message}")

    def _handle_response(self, message: dict[str, Any]) -> None:
        request_id = message["id"]
        pending = self._pending_requests.pop(request_id, None)

        if pending is None:
            logger.warning(f"Received response for unknown request: {request_id}")
            return

        if pending.future.done():
            return

        if "error" in message:
            error = message["error"] or {}
            logger.debug(f"LSP RESPONSE [{request_id}] ERROR: {error}")
            pending.future.set_exception(
                UnderlyingProtocolError(
                    error.get("code", -1),
                    error.get("message", "Unknown error"),
                    error.get("data"),
                )
            )
        else:
            result = message.get("result")
            logger.debug(
                f"LSP RESPONSE [{request_id}] {pending.method} after {pending.age:.3f}s: "
                f"{type(result).__name__}"
            )
            pending.future.set_result(result)

    async def _handle_server_request(self, message: dict[str, Any]) -> None:
        method = message["method"]
        request_id = message["id"]

        logger.debug(f"Received server request: {method} (id={request_id})")

        result: Any = None
        error: dict[str, Any] | None = None

        if method == "workspace/configuration":
            result = [{}] * len((message.get("params") or {}).get("items", []))
        elif method in (
            "window/workDoneProgress/create",
            "client/registerCapability",
            "client/unregisterCapability",
            "window/showMessageRequest",
        ):
            result = None
        elif method == "workspace/applyEdit":
            # Edits only reach disk through the mutation tools
            result = {"applied": False, "failureReason": "Edits are applied by lspmux tools only"}
        else:
            error = {"code": -32601, "message": f"Method not found: {method}"}

        response: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id}
        if error:
            response["error"] = error
        else:
            response["result"] = result

        try:
            await self._write(response)
        except OSError as e:
            logger.warning(f"Could not answer server request {method}: {e}")

    async def _handle_notification(self, message: dict[str, Any]) -> None:
        method = message["method"]
        params = message.get("params")

        logger.debug(f"Received notification: {method}")

        if method == "$/progress" and params:
            self._handle_progress(params)

        handler = self._notification_handlers.get(method)
        if handler:
            try:
                await handler(params)
            except Exception:
                logger.exception(f"Notification handler for {method} failed")

    def _handle_progress(self, params: dict[str, Any]) -> None:
        token: str | int | None = params.get("token")
        value = params.get("value") or {}
        kind = value.get("kind")

        if token is None:
            return

        if kind == "begin":
            self._active_progress_tokens.add(token)
            self._indexing_done.clear()
            logger.debug(f"Progress begin: {token} - {value.get('title', '')}")
        elif kind == "end":
            self._active_progress_tokens.discard(token)
            if not self._active_progress_tokens:
                self._indexing_done.set()
                logger.debug("All progress complete, server ready")

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        self._notification_handlers[method] = handler

    async def wait_for_indexing(self, timeout: float = 30.0) -> bool:
        if self._indexing_done.is_set():
            return True
        try:
            await asyncio.wait_for(self._indexing_done.wait(), timeout=timeout)
            logger.debug(f"Server {self.server_name} finished indexing")
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Timeout waiting for {self.server_name} to finish indexing")
            return False


def _parse_response(method: str, raw_result: Any) -> Any:
    try:
        return _parse_result(method, raw_result)
    except ValidationError as e:
        raise UnderlyingProtocolError(
            -32603, f"Unexpected {method} response shape ({e.error_count()} validation errors)"
        )


def _parse_result(method: str, raw_result: Any) -> Any:
    from .types import (
        InitializeResult,
        Location,
        LocationLink,
        Hover,
        DocumentSymbol,
        SymbolInformation,
        WorkspaceSymbol,
        WorkspaceEdit,
        CallHierarchyItem,
        CallHierarchyIncomingCall,
        CallHierarchyOutgoingCall,
        TypeHierarchyItem,
        CompletionList,
        CompletionItem,
        SignatureHelp,
        InlayHint,
        SemanticTokens,
        FoldingRange,
        DocumentLink,
        SelectionRange,
        CodeAction,
        Command,
        TextEdit,
        FullDocumentDiagnosticReport,
        UnchangedDocumentDiagnosticReport,
    )

    if raw_result is None:
        return None

    if method == "initialize":
        return InitializeResult.model_validate(raw_result)

    if method == "shutdown":
        return None

    if method in (
        "textDocument/definition",
        "textDocument/declaration",
        "textDocument/implementation",
        "textDocument/typeDefinition",
    ):
        if isinstance(raw_result, list):
            if not raw_result:
                return []
            if "targetUri" in raw_result[0]:
                return [LocationLink.model_validate(item) for item in raw_result]
            return [Location.model_validate(item) for item in raw_result]
        return Location.model_validate(raw_result)

    if method == "textDocument/references":
        if isinstance(raw_result, list):
            return [Location.model_validate(item) for item in raw_result]
        return None

    if method == "textDocument/hover":
        return Hover.model_validate(raw_result)

    if method == "textDocument/documentSymbol":
        if isinstance(raw_result, list):
            if not raw_result:
                return []
            if "location" in raw_result[0]:
                return [SymbolInformation.model_validate(item) for item in raw_result]
            return [DocumentSymbol.model_validate(item) for item in raw_result]
        return None

    if method == "workspace/symbol":
        if isinstance(raw_result, list):
            return [WorkspaceSymbol.model_validate(item) for item in raw_result]
        return None

    if method in (
        "textDocument/rename",
        "workspace/willCreateFiles",
        "workspace/willRenameFiles",
        "workspace/willDeleteFiles",
    ):
        return WorkspaceEdit.model_validate(raw_result)

    if method == "textDocument/formatting":
        return [TextEdit.model_validate(item) for item in raw_result]

    if method == "textDocument/completion":
        if isinstance(raw_result, list):
            return CompletionList(
                isIncomplete=False,
                items=[CompletionItem.model_validate(item) for item in raw_result],
            )
        return CompletionList.model_validate(raw_result)

    if method == "textDocument/signatureHelp":
        return SignatureHelp.model_validate(raw_result)

    if method == "textDocument/inlayHint":
        return [InlayHint.model_validate(item) for item in raw_result]

    if method == "textDocument/semanticTokens/full":
        return SemanticTokens.model_validate(raw_result)

    if method == "textDocument/foldingRange":
        return [FoldingRange.model_validate(item) for item in raw_result]

    if method == "textDocument/documentLink":
        return [DocumentLink.model_validate(item) for item in raw_result]

    if method == "textDocument/selectionRange":
        return [SelectionRange.model_validate(item) for item in raw_result]

    if method == "textDocument/codeAction":
        actions: list[CodeAction | Command] = []
        for item in raw_result:
            if isinstance(item.get("command"), str):
                actions.append(Command.model_validate(item))
            else:
                actions.append(CodeAction.model_validate(item))
        return actions

    if method == "textDocument/diagnostic":
        if raw_result.get("kind") == "unchanged":
            return UnchangedDocumentDiagnosticReport.model_validate(raw_result)
        return FullDocumentDiagnosticReport.model_validate(raw_result)

    if method == "textDocument/prepareCallHierarchy":
        if isinstance(raw_result, list):
            return [CallHierarchyItem.model_validate(item) for item in raw_result]
        return None

    if method == "callHierarchy/incomingCalls":
        if isinstance(raw_result, list):
            return [
                CallHierarchyIncomingCall.model_validate(item) for item in raw_result
            ]
        return None

    if method == "callHierarchy/outgoingCalls":
        if isinstance(raw_result, list):
            return [
                CallHierarchyOutgoingCall.model_validate(item) for item in raw_result
            ]
        return None

    if method == "textDocument/prepareTypeHierarchy":
        if isinstance(raw_result, list):
            return [TypeHierarchyItem.model_validate(item) for item in raw_result]
        return None

    if method in ("typeHierarchy/subtypes", "typeHierarchy/supertypes"):
        if isinstance(raw_result, list):
            return [TypeHierarchyItem.model_validate(item) for item in raw_result]
        return None

    return raw_result
