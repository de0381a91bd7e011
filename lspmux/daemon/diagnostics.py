"""Diagnostics collection over the pull and push channels.

Servers report diagnostics either on request (``textDocument/diagnostic``)
or by pushing ``textDocument/publishDiagnostics`` notifications whenever
they finish analyzing a document. The aggregator hides that difference and
keeps "nothing reported yet" apart from "analyzed, no problems".
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import UnderlyingProtocolError
from ..lsp.client import LSPClient
from ..lsp.types import (
    Diagnostic,
    DocumentDiagnosticParams,
    PublishDiagnosticsParams,
    TextDocumentIdentifier,
    UnchangedDocumentDiagnosticReport,
)
from ..utils.uri import path_to_uri

logger = logging.getLogger(__name__)

METHOD_NOT_FOUND = -32601


class DiagnosticsState(str, Enum):
    AVAILABLE = "available"
    NOT_YET_ANALYZED = "not_yet_analyzed"
    ERROR = "error"


@dataclass
class DiagnosticsReport:
    path: Path
    state: DiagnosticsState
    diagnostics: list[Diagnostic] = field(default_factory=list)
    error: str | None = None
    channel: str | None = None


class DiagnosticsAggregator:
    push_timeout: float
    _pushed: dict[str, list[Diagnostic]]
    _waiters: dict[str, list[asyncio.Future[list[Diagnostic]]]]
    _pulled: dict[str, tuple[str | None, list[Diagnostic]]]
    _pull_unsupported: set[str]

    def __init__(self, push_timeout: float = 5.0):
        self.push_timeout = push_timeout
        self._pushed = {}
        self._waiters = {}
        self._pulled = {}
        self._pull_unsupported = set()

    def attach(self, client: LSPClient) -> None:
        self._pull_unsupported.clear()
        client.on_notification("textDocument/publishDiagnostics", self.on_publish)

    async def on_publish(self, params: dict[str, Any] | None) -> None:
        if not params:
            return
        published = PublishDiagnosticsParams.model_validate(params)
        logger.debug(f"{len(published.diagnostics)} diagnostics pushed for {published.uri}")
        self._pushed[published.uri] = published.diagnostics
        for waiter in self._waiters.pop(published.uri, []):
            if not waiter.done():
                waiter.set_result(published.diagnostics)

    def invalidate(self, uri: str) -> None:
        """Forget what was pushed for ``uri``; called right before the document is (re)opened."""
        self._pushed.pop(uri, None)

    def buffered(self, uri: str) -> list[Diagnostic] | None:
        return self._pushed.get(uri)

    async def collect(self, instance: Any, path: Path) -> DiagnosticsReport:
        await instance.ensure_document_open(path)
        client: LSPClient = instance.require_client()
        uri = path_to_uri(path)

        if client.capabilities.supports_pull_diagnostics() and uri not in self._pull_unsupported:
            try:
                items = await self._pull(client, uri)
            except UnderlyingProtocolError as e:
                if e.code != METHOD_NOT_FOUND:
                    return DiagnosticsReport(
                        path, DiagnosticsState.ERROR, error=e.message, channel="pull"
                    )
                logger.info(f"{client.server_name} does not pull diagnostics for {uri}, using push")
                self._pull_unsupported.add(uri)
            else:
                return DiagnosticsReport(
                    path, DiagnosticsState.AVAILABLE, diagnostics=items, channel="pull"
                )

        return await self._wait_for_push(uri, path)

    async def _pull(self, client: LSPClient, uri: str) -> list[Diagnostic]:
        previous = self._pulled.get(uri)
        params = DocumentDiagnosticParams(
            textDocument=TextDocumentIdentifier(uri=uri),
            previousResultId=previous[0] if previous else None,
        )
        report = await client.send_request("textDocument/diagnostic", params, tool="get_diagnostics")

        if report is None:
            return []
        if isinstance(report, UnchangedDocumentDiagnosticReport):
            items = previous[1] if previous else []
        else:
            items = report.items
        self._pulled[uri] = (report.resultId, items)
        return items

    async def _wait_for_push(self, uri: str, path: Path) -> DiagnosticsReport:
        buffered = self._pushed.get(uri)
        if buffered is not None:
            return DiagnosticsReport(
                path, DiagnosticsState.AVAILABLE, diagnostics=buffered, channel="push"
            )

        waiter: asyncio.Future[list[Diagnostic]] = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(uri, []).append(waiter)
        try:
            items = await asyncio.wait_for(waiter, timeout=self.push_timeout)
        except asyncio.TimeoutError:
            return DiagnosticsReport(path, DiagnosticsState.NOT_YET_ANALYZED, channel="push")
        finally:
            waiters = self._waiters.get(uri)
            if waiters and waiter in waiters:
                waiters.remove(waiter)
                if not waiters:
                    del self._waiters[uri]

        return DiagnosticsReport(path, DiagnosticsState.AVAILABLE, diagnostics=items, channel="push")
