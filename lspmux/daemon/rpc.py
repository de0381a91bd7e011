"""Argument and result models for the tool catalog.

Flat ``line`` arguments are 1-based and ``character`` is 0-based. Structured
protocol objects (``range``, ``item``, workspace edit ranges) are passed
through as raw 0-based protocol values.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from ..lsp.types import CallHierarchyItem, Range, TextEdit, TypeHierarchyItem


# === Shared argument shapes ===
class FileArgs(BaseModel):
    file_path: str


class PositionArgs(FileArgs):
    line: int = Field(ge=1)
    character: int = Field(ge=0)


class SymbolArgs(FileArgs):
    symbol_name: str = Field(min_length=1)
    symbol_kind: str | None = None
    strict: bool = False


# === Navigation ===
class FindDefinitionParams(SymbolArgs):
    pass


class FindReferencesParams(SymbolArgs):
    include_declaration: bool = True


class SearchWorkspaceSymbolsParams(BaseModel):
    query: str
    extensions: list[str] | None = None


# === Intelligence ===
class GetHoverParams(PositionArgs):
    pass


class GetCompletionsParams(PositionArgs):
    trigger_character: str | None = None
    limit: int = Field(default=50, ge=1)


class GetSignatureHelpParams(PositionArgs):
    pass


class GetInlayHintsParams(FileArgs):
    start_line: int = Field(ge=1)
    start_character: int = Field(default=0, ge=0)
    end_line: int = Field(ge=1)
    end_character: int = Field(default=0, ge=0)


class GetSemanticTokensParams(FileArgs):
    pass


class GetCodeActionsParams(FileArgs):
    range: Range | None = None


# === Document structure ===
class GetDocumentSymbolsParams(FileArgs):
    pass


class GetFoldingRangesParams(FileArgs):
    pass


class GetDocumentLinksParams(FileArgs):
    pass


class PositionArg(BaseModel):
    line: int = Field(ge=1)
    character: int = Field(ge=0)


class GetSelectionRangeParams(FileArgs):
    positions: list[PositionArg] = Field(min_length=1)


class GetDiagnosticsParams(FileArgs):
    severity: Literal["error", "warning", "information", "hint"] | None = None


# === Hierarchies ===
class PrepareCallHierarchyParams(PositionArgs):
    pass


class PrepareTypeHierarchyParams(PositionArgs):
    pass


class CallHierarchyCallsParams(BaseModel):
    item: CallHierarchyItem


class TypeHierarchyNeighborsParams(BaseModel):
    item: TypeHierarchyItem


# === Mutations ===
class RenameSymbolParams(SymbolArgs):
    new_name: str = Field(min_length=1)
    dry_run: bool = False


class RenameSymbolStrictParams(PositionArgs):
    new_name: str = Field(min_length=1)
    dry_run: bool = False


class FormattingArgs(BaseModel):
    tab_size: int | None = Field(default=None, ge=1)
    insert_spaces: bool | None = None


class FormatDocumentParams(FileArgs):
    options: FormattingArgs | None = None
    dry_run: bool = False


class CreateFileParams(FileArgs):
    content: str = ""
    overwrite: bool = False
    dry_run: bool = False


class RenameFileParams(BaseModel):
    old_path: str
    new_path: str
    overwrite: bool = False
    dry_run: bool = False


class DeleteFileParams(FileArgs):
    dry_run: bool = False


class ApplyWorkspaceEditParams(BaseModel):
    changes: dict[str, list[TextEdit]]
    validate_before_apply: bool = False
    dry_run: bool = False


# === Server control ===
class RestartServerParams(BaseModel):
    extensions: list[str] | None = None


# === Results ===
class RangeInfo(BaseModel):
    line: int
    character: int
    end_line: int
    end_character: int


class LocationInfo(BaseModel):
    path: str
    line: int
    character: int = 0
    end_line: int | None = None
    end_character: int | None = None
    context: list[str] | None = None
    context_start: int | None = None


class SymbolInfo(BaseModel):
    name: str
    kind: str
    path: str | None = None
    line: int
    character: int = 0
    container: str | None = None
    detail: str | None = None
    depth: int = 0


class DefinitionResult(BaseModel):
    symbol: SymbolInfo
    locations: list[LocationInfo] = Field(default_factory=list)


class ReferencesResult(BaseModel):
    symbol: SymbolInfo
    locations: list[LocationInfo] = Field(default_factory=list)


class WorkspaceSymbolsResult(BaseModel):
    query: str
    symbols: list[SymbolInfo] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class DocumentSymbolsResult(BaseModel):
    path: str
    symbols: list[SymbolInfo] = Field(default_factory=list)


class HoverResult(BaseModel):
    path: str
    line: int
    character: int
    contents: str | None = None
    range: RangeInfo | None = None


class CompletionInfo(BaseModel):
    label: str
    kind: str | None = None
    detail: str | None = None
    documentation: str | None = None
    insert_text: str | None = None


class CompletionsResult(BaseModel):
    path: str
    line: int
    character: int
    is_incomplete: bool = False
    total: int = 0
    items: list[CompletionInfo] = Field(default_factory=list)


class SignatureInfo(BaseModel):
    label: str
    documentation: str | None = None
    parameters: list[str] = Field(default_factory=list)
    active_parameter: int | None = None


class SignatureHelpResult(BaseModel):
    path: str
    line: int
    character: int
    signatures: list[SignatureInfo] = Field(default_factory=list)
    active_signature: int | None = None


class InlayHintInfo(BaseModel):
    line: int
    character: int
    label: str
    kind: str | None = None


class InlayHintsResult(BaseModel):
    path: str
    hints: list[InlayHintInfo] = Field(default_factory=list)


class SemanticTokenInfo(BaseModel):
    line: int
    character: int
    length: int
    token_type: str
    modifiers: list[str] = Field(default_factory=list)
    text: str = ""


class SemanticTokensResult(BaseModel):
    path: str
    tokens: list[SemanticTokenInfo] = Field(default_factory=list)


class FoldingRangeInfo(BaseModel):
    start_line: int
    end_line: int
    kind: str | None = None


class FoldingRangesResult(BaseModel):
    path: str
    ranges: list[FoldingRangeInfo] = Field(default_factory=list)


class DocumentLinkInfo(BaseModel):
    range: RangeInfo
    target: str | None = None
    tooltip: str | None = None


class DocumentLinksResult(BaseModel):
    path: str
    links: list[DocumentLinkInfo] = Field(default_factory=list)


class SelectionRangeInfo(BaseModel):
    line: int
    character: int
    ranges: list[RangeInfo] = Field(default_factory=list)


class SelectionRangesResult(BaseModel):
    path: str
    selections: list[SelectionRangeInfo] = Field(default_factory=list)


class CodeActionInfo(BaseModel):
    title: str
    kind: str | None = None
    is_preferred: bool = False
    has_edit: bool = False
    command: str | None = None


class CodeActionsResult(BaseModel):
    path: str
    range: RangeInfo
    actions: list[CodeActionInfo] = Field(default_factory=list)


class DiagnosticInfo(BaseModel):
    severity: str
    line: int
    character: int
    end_line: int
    end_character: int
    message: str
    source: str | None = None
    code: str | None = None


class DiagnosticsResult(BaseModel):
    path: str
    state: Literal["available", "not_yet_analyzed", "error"]
    channel: str | None = None
    diagnostics: list[DiagnosticInfo] = Field(default_factory=list)
    error: str | None = None


class HierarchyNode(BaseModel):
    name: str
    kind: str
    path: str
    line: int
    character: int
    detail: str | None = None
    item: dict[str, Any]


class PrepareHierarchyResult(BaseModel):
    hierarchy: Literal["call", "type"]
    path: str
    line: int
    character: int
    items: list[HierarchyNode] = Field(default_factory=list)


class CallInfo(BaseModel):
    node: HierarchyNode
    from_ranges: list[RangeInfo] = Field(default_factory=list)


class CallHierarchyCallsResult(BaseModel):
    direction: Literal["incoming", "outgoing"]
    item_name: str
    calls: list[CallInfo] = Field(default_factory=list)


class TypeHierarchyResult(BaseModel):
    direction: Literal["supertypes", "subtypes"]
    item_name: str
    items: list[HierarchyNode] = Field(default_factory=list)


class EditLocation(BaseModel):
    path: str
    line: int
    character: int
    before: str
    after: str


class MutationResult(BaseModel):
    operation: str
    summary: str
    dry_run: bool
    state: Literal["preview", "applied", "partial"]
    changes: list[EditLocation] = Field(default_factory=list)
    file_operations: list[str] = Field(default_factory=list)
    diff: str = ""
    files_changed: list[str] = Field(default_factory=list)
    failed_path: str | None = None
    failure: str | None = None
    not_attempted: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return self.state == "partial"


class ServerStatus(BaseModel):
    group: str
    server: str
    extensions: list[str]
    state: str
    pid: int | None = None
    generation: int = 0
    pending: int = 0
    open_documents: list[str] = Field(default_factory=list)
    last_error: str | None = None


class RestartResult(BaseModel):
    restarted: list[str] = Field(default_factory=list)
    servers: list[ServerStatus] = Field(default_factory=list)


class ToolResult(BaseModel):
    content: list[dict[str, str]]
    data: dict[str, Any] | None = None
    is_error: bool = False

    @property
    def text(self) -> str:
        return "\n".join(block.get("text", "") for block in self.content)
