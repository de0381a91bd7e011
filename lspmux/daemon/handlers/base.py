"""Base handler context and shared utilities."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from ...errors import (
    InvalidArguments,
    LspmuxError,
    MethodNotSupported,
    RequestTimeout,
    ServerRestarted,
    UnderlyingProtocolError,
)
from ...lsp.types import (
    FileChangeType,
    Hover,
    Location,
    LocationLink,
    MarkedString,
    MarkupContent,
    Position,
    Range,
    RenameParams,
    TextDocumentIdentifier,
    TextDocumentPositionParams,
    WorkspaceEdit,
    symbol_kind_name,
)
from ...servers.registry import extension_of
from ...utils.config import Config
from ...utils.text import get_lines_around, read_file_content
from ...utils.uri import path_to_uri, relative_display, to_path, uri_to_path
from ..mutations import (
    EditPlan,
    FileChange,
    apply_plan,
    check_stale,
    render_preview,
    validate_bounds,
)
from ..rpc import EditLocation, HierarchyNode, LocationInfo, MutationResult, RangeInfo

if TYPE_CHECKING:
    from ..diagnostics import DiagnosticsAggregator
    from ..supervisor import ServerInstance, Supervisor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HandlerContext:
    """Shared access to the supervisor, diagnostics and config for tool handlers."""

    def __init__(
        self,
        supervisor: Supervisor,
        diagnostics: DiagnosticsAggregator,
        config: Config,
    ):
        self.supervisor = supervisor
        self.diagnostics = diagnostics
        self.config = config
        daemon = config.get("daemon", {})
        self.retry_timeouts = bool(daemon.get("retry_timeouts", False))
        self.tie_break = config.get("resolver", {}).get("tie_break", "declaration")
        self.formatting = config.get("formatting", {})

    @property
    def root(self) -> Path:
        return self.supervisor.root

    def resolve_path(self, file_path: str) -> Path:
        return to_path(file_path, self.root)

    def existing_file(self, file_path: str) -> Path:
        path = self.resolve_path(file_path)
        if not path.is_file():
            raise InvalidArguments(f"File not found: {file_path}")
        return path

    def relative_path(self, path: Path) -> str:
        return relative_display(path, self.root)

    def to_position(self, line: int, character: int) -> Position:
        return Position(line=line - 1, character=character)

    async def run(
        self,
        path: Path,
        operation: Callable[[ServerInstance], Awaitable[T]],
    ) -> T:
        """Run ``operation`` against the instance serving ``path``.

        A request cut short by a crash is retried once after the automatic
        restart; a timeout is retried once when ``daemon.retry_timeouts`` is set.
        """
        wait_recovery = False
        crash_retry_left = True
        timeout_retry_left = self.retry_timeouts

        while True:
            instance = await self.supervisor.acquire_for_file(path, wait_recovery=wait_recovery)
            try:
                return await operation(instance)
            except ServerRestarted as e:
                if not e.crashed or not crash_retry_left:
                    raise
                crash_retry_left = False
                wait_recovery = True
                logger.info(f"Retrying after {instance.name} restarted: {e}")
            except RequestTimeout as e:
                if not timeout_retry_left:
                    raise
                timeout_retry_left = False
                logger.info(f"Retrying after timeout: {e}")

    async def send(
        self,
        instance: ServerInstance,
        method: str,
        params: Any,
        tool: str,
        capability: str | None = None,
        sync: Path | None = None,
    ) -> Any:
        client = instance.require_client()
        if capability and not client.capabilities.supports(capability):
            raise MethodNotSupported(method, instance.name)
        if sync is not None:
            await instance.ensure_document_open(sync)
        return await client.send_request(method, params, tool=tool)

    async def request(
        self,
        path: Path,
        method: str,
        params: Any,
        tool: str,
        capability: str | None = None,
        sync: bool = True,
    ) -> Any:
        return await self.run(
            path,
            lambda instance: self.send(
                instance, method, params, tool, capability, sync=path if sync else None
            ),
        )

    def position_params(self, path: Path, line: int, character: int) -> TextDocumentPositionParams:
        return TextDocumentPositionParams(
            textDocument=TextDocumentIdentifier(uri=path_to_uri(path)),
            position=self.to_position(line, character),
        )

    async def rename_at(
        self, instance: ServerInstance, path: Path, position: Position, new_name: str, tool: str
    ) -> WorkspaceEdit:
        client = instance.require_client()
        if not client.capabilities.supports("renameProvider"):
            raise MethodNotSupported("textDocument/rename", instance.name)

        doc = await instance.ensure_document_open(path)
        identifier = TextDocumentIdentifier(uri=doc.uri)

        if client.capabilities.supports_prepare_rename():
            prepared = await client.send_request(
                "textDocument/prepareRename",
                TextDocumentPositionParams(textDocument=identifier, position=position),
                tool=tool,
            )
            if prepared is None:
                raise UnderlyingProtocolError(
                    -32803,
                    f"{instance.name} cannot rename the symbol at "
                    f"{self.relative_path(path)}:{position.line + 1}:{position.character}",
                )

        edit = await client.send_request(
            "textDocument/rename",
            RenameParams(textDocument=identifier, position=position, newName=new_name),
            tool=tool,
        )
        if edit is None:
            raise UnderlyingProtocolError(
                -32803, f"{instance.name} returned no edits for the rename"
            )
        return edit

    # === Open document bookkeeping used by the mutation pipeline ===
    def _instance_holding(self, path: Path) -> ServerInstance | None:
        ext = extension_of(path)
        for instance in self.supervisor.instances:
            if ext in instance.extensions:
                return instance
        return None

    def document_text(self, path: Path) -> str | None:
        instance = self._instance_holding(path)
        return instance.document_text(path) if instance else None

    def document_version(self, path: Path) -> int | None:
        instance = self._instance_holding(path)
        return instance.document_version(path) if instance else None

    async def run_plan(
        self,
        plan: EditPlan,
        operation: str,
        summary: str,
        dry_run: bool,
        validate: bool = False,
    ) -> MutationResult:
        if validate:
            validate_bounds(plan, self.root)

        preview = render_preview(plan, self.root)
        changes = [EditLocation(**loc.to_dict()) for loc in preview.locations]

        if dry_run:
            return MutationResult(
                operation=operation,
                summary=summary,
                dry_run=True,
                state="preview",
                changes=changes,
                file_operations=preview.file_operations,
                diff=preview.diff,
                files_changed=preview.files,
                notes=preview.notes,
            )

        check_stale(plan, self.root, current_version=self.document_version)

        apply_plan(plan)
        await self.sync_after_apply(plan)

        return MutationResult(
            operation=operation,
            summary=summary,
            dry_run=False,
            state=plan.state.value,
            changes=changes,
            file_operations=preview.file_operations,
            diff=preview.diff,
            files_changed=[self.relative_path(p) for p in plan.changed],
            failed_path=self.relative_path(plan.failed_path) if plan.failed_path else None,
            failure=plan.failure,
            not_attempted=[_describe_step(step, self.root) for step in plan.not_attempted],
            notes=preview.notes,
        )

    async def sync_after_apply(self, plan: EditPlan) -> None:
        """Tell running servers what changed on disk."""
        events: list[tuple[Path, FileChangeType]] = []
        created: list[Path] = []
        renamed: list[tuple[Path, Path]] = []
        deleted: list[Path] = []

        applied_files = {p for p in plan.changed}
        for step in plan.file_changes:
            if step.path not in applied_files:
                continue
            if step.kind == "create":
                created.append(step.path)
                events.append((step.path, FileChangeType.Created))
            elif step.kind == "rename" and step.new_path is not None:
                renamed.append((step.path, step.new_path))
                events.append((step.path, FileChangeType.Deleted))
                events.append((step.new_path, FileChangeType.Created))
            elif step.kind == "delete":
                deleted.append(step.path)
                events.append((step.path, FileChangeType.Deleted))

        file_op_paths = {p for p, _ in events}
        for path in plan.changed:
            if path not in file_op_paths:
                events.append((path, FileChangeType.Changed))

        for instance in self.supervisor.ready_instances():
            try:
                for old_path, _ in renamed:
                    await instance.close_document(old_path)
                for path in deleted:
                    await instance.close_document(path)
                for path in plan.changed:
                    uri = path_to_uri(path)
                    if uri in instance.open_documents and path.is_file():
                        await instance.ensure_document_open(path)
                await instance.notify_files_changed(events)
                await _notify_file_operations(instance, created, renamed, deleted)
            except LspmuxError as e:
                logger.warning(f"Could not notify {instance.name} about applied edits: {e}")

    # === Result normalization ===
    def format_locations(
        self,
        result: Location | LocationLink | list[Location] | list[LocationLink] | None,
        context: int = 0,
    ) -> list[LocationInfo]:
        if not result:
            return []

        items: list[Location | LocationLink]
        if isinstance(result, list):
            items = list(result)
        else:
            items = [result]

        locations: list[LocationInfo] = []
        for item in items:
            if isinstance(item, LocationLink):
                uri = item.targetUri
                range_ = item.targetSelectionRange
            else:
                uri = item.uri
                range_ = item.range

            file_path = uri_to_path(uri)
            location = LocationInfo(
                path=self.relative_path(file_path),
                line=range_.start.line + 1,
                character=range_.start.character,
                end_line=range_.end.line + 1,
                end_character=range_.end.character,
            )

            if context > 0 and file_path.is_file():
                content = read_file_content(file_path)
                lines, start, _ = get_lines_around(content, range_.start.line, context)
                location.context = lines
                location.context_start = start + 1

            locations.append(location)

        return locations

    def hierarchy_node(self, item: Any) -> HierarchyNode:
        start = item.selectionRange.start
        return HierarchyNode(
            name=item.name,
            kind=symbol_kind_name(item.kind),
            path=self.relative_path(uri_to_path(item.uri)),
            line=start.line + 1,
            character=start.character,
            detail=item.detail,
            item=item.model_dump(by_alias=True, exclude_none=True),
        )


def range_info(range_: Range) -> RangeInfo:
    return RangeInfo(
        line=range_.start.line + 1,
        character=range_.start.character,
        end_line=range_.end.line + 1,
        end_character=range_.end.character,
    )


def hover_text(hover: Hover | None) -> str | None:
    if hover is None:
        return None
    contents = hover.contents
    parts: list[str] = []
    for entry in contents if isinstance(contents, list) else [contents]:
        if isinstance(entry, MarkupContent):
            parts.append(entry.value)
        elif isinstance(entry, MarkedString):
            parts.append(f"```{entry.language}\n{entry.value}\n```")
        elif entry:
            parts.append(str(entry))
    text = "\n\n".join(p for p in parts if p.strip())
    return text or None


def documentation_text(doc: MarkupContent | str | None) -> str | None:
    if doc is None:
        return None
    if isinstance(doc, MarkupContent):
        return doc.value or None
    return doc or None


async def _notify_file_operations(
    instance: ServerInstance,
    created: list[Path],
    renamed: list[tuple[Path, Path]],
    deleted: list[Path],
) -> None:
    client = instance.require_client()
    caps = client.capabilities

    def ours(path: Path) -> bool:
        return extension_of(path) in instance.extensions

    created = [p for p in created if ours(p)]
    renamed = [(a, b) for a, b in renamed if ours(a) or ours(b)]
    deleted = [p for p in deleted if ours(p)]

    if created and caps.supports_file_operation("didCreate"):
        await client.send_notification(
            "workspace/didCreateFiles", {"files": [{"uri": path_to_uri(p)} for p in created]}
        )
    if renamed and caps.supports_file_operation("didRename"):
        await client.send_notification(
            "workspace/didRenameFiles",
            {"files": [{"oldUri": path_to_uri(a), "newUri": path_to_uri(b)} for a, b in renamed]},
        )
    if deleted and caps.supports_file_operation("didDelete"):
        await client.send_notification(
            "workspace/didDeleteFiles", {"files": [{"uri": path_to_uri(p)} for p in deleted]}
        )


def _describe_step(step: Any, root: Path) -> str:
    if isinstance(step, FileChange):
        return step.describe(root)
    start = step.range.start
    return f"edit {relative_display(step.path, root)}:{start.line + 1}:{start.character}"
