"""Tool dispatcher shared by the MCP server and the CLI."""

import logging
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from ..errors import LspmuxError
from ..output.formatters import format_error, format_result
from ..utils.config import Config, load_config
from .diagnostics import DiagnosticsAggregator
from .handlers import (
    handle_apply_workspace_edit,
    handle_create_file,
    handle_delete_file,
    handle_find_definition,
    handle_find_references,
    handle_format_document,
    handle_get_call_hierarchy_incoming_calls,
    handle_get_call_hierarchy_outgoing_calls,
    handle_get_code_actions,
    handle_get_completions,
    handle_get_diagnostics,
    handle_get_document_links,
    handle_get_document_symbols,
    handle_get_folding_ranges,
    handle_get_hover,
    handle_get_inlay_hints,
    handle_get_selection_range,
    handle_get_semantic_tokens,
    handle_get_signature_help,
    handle_get_type_hierarchy_subtypes,
    handle_get_type_hierarchy_supertypes,
    handle_prepare_call_hierarchy,
    handle_prepare_type_hierarchy,
    handle_rename_file,
    handle_rename_symbol,
    handle_rename_symbol_strict,
    handle_restart_server,
    handle_search_workspace_symbols,
)
from .handlers.base import HandlerContext
from .rpc import (
    ApplyWorkspaceEditParams,
    CallHierarchyCallsParams,
    CreateFileParams,
    DeleteFileParams,
    FindDefinitionParams,
    FindReferencesParams,
    FormatDocumentParams,
    GetCodeActionsParams,
    GetCompletionsParams,
    GetDiagnosticsParams,
    GetDocumentLinksParams,
    GetDocumentSymbolsParams,
    GetFoldingRangesParams,
    GetHoverParams,
    GetInlayHintsParams,
    GetSelectionRangeParams,
    GetSemanticTokensParams,
    GetSignatureHelpParams,
    MutationResult,
    PrepareCallHierarchyParams,
    PrepareTypeHierarchyParams,
    RenameFileParams,
    RenameSymbolParams,
    RenameSymbolStrictParams,
    RestartServerParams,
    SearchWorkspaceSymbolsParams,
    ToolResult,
    TypeHierarchyNeighborsParams,
)
from .supervisor import Supervisor

logger = logging.getLogger(__name__)

TOOLS: dict[str, tuple[type[BaseModel], Callable]] = {
    "find_definition": (FindDefinitionParams, handle_find_definition),
    "find_references": (FindReferencesParams, handle_find_references),
    "rename_symbol": (RenameSymbolParams, handle_rename_symbol),
    "rename_symbol_strict": (RenameSymbolStrictParams, handle_rename_symbol_strict),
    "get_diagnostics": (GetDiagnosticsParams, handle_get_diagnostics),
    "get_document_symbols": (GetDocumentSymbolsParams, handle_get_document_symbols),
    "get_code_actions": (GetCodeActionsParams, handle_get_code_actions),
    "format_document": (FormatDocumentParams, handle_format_document),
    "search_workspace_symbols": (SearchWorkspaceSymbolsParams, handle_search_workspace_symbols),
    "get_folding_ranges": (GetFoldingRangesParams, handle_get_folding_ranges),
    "get_document_links": (GetDocumentLinksParams, handle_get_document_links),
    "get_hover": (GetHoverParams, handle_get_hover),
    "get_completions": (GetCompletionsParams, handle_get_completions),
    "get_signature_help": (GetSignatureHelpParams, handle_get_signature_help),
    "get_inlay_hints": (GetInlayHintsParams, handle_get_inlay_hints),
    "get_semantic_tokens": (GetSemanticTokensParams, handle_get_semantic_tokens),
    "prepare_call_hierarchy": (PrepareCallHierarchyParams, handle_prepare_call_hierarchy),
    "prepare_type_hierarchy": (PrepareTypeHierarchyParams, handle_prepare_type_hierarchy),
    "get_selection_range": (GetSelectionRangeParams, handle_get_selection_range),
    "get_call_hierarchy_incoming_calls": (
        CallHierarchyCallsParams,
        handle_get_call_hierarchy_incoming_calls,
    ),
    "get_call_hierarchy_outgoing_calls": (
        CallHierarchyCallsParams,
        handle_get_call_hierarchy_outgoing_calls,
    ),
    "get_type_hierarchy_supertypes": (
        TypeHierarchyNeighborsParams,
        handle_get_type_hierarchy_supertypes,
    ),
    "get_type_hierarchy_subtypes": (
        TypeHierarchyNeighborsParams,
        handle_get_type_hierarchy_subtypes,
    ),
    "create_file": (CreateFileParams, handle_create_file),
    "rename_file": (RenameFileParams, handle_rename_file),
    "delete_file": (DeleteFileParams, handle_delete_file),
    "apply_workspace_edit": (ApplyWorkspaceEditParams, handle_apply_workspace_edit),
    "restart_server": (RestartServerParams, handle_restart_server),
}


class ToolServer:
    """Runs catalog tools against the language servers of one workspace."""

    def __init__(self, root: Path, config: Config | None = None):
        self.root = root.resolve()
        self.config = config if config is not None else load_config(self.root)
        daemon = self.config.get("daemon", {})
        self.diagnostics = DiagnosticsAggregator(
            push_timeout=float(daemon.get("diagnostics_timeout", 5.0))
        )
        self.supervisor = Supervisor(self.root, self.config, diagnostics=self.diagnostics)
        self._ctx = HandlerContext(self.supervisor, self.diagnostics, self.config)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        tool = TOOLS.get(name)
        if tool is None:
            return _error_result(
                "InvalidArguments", f"Unknown tool: {name}", {"kind": "InvalidArguments"}
            )

        params_class, handler = tool
        logger.info(f"Tool call: {name}")

        try:
            params = params_class.model_validate(arguments or {})
        except ValidationError as e:
            return _error_result(
                "InvalidArguments",
                _describe_validation_error(e),
                {
                    "kind": "InvalidArguments",
                    "errors": e.errors(include_url=False, include_context=False, include_input=False),
                },
            )

        try:
            result = await handler(self._ctx, params)
        except LspmuxError as e:
            logger.warning(f"{name} failed: [{e.kind}] {e}")
            return _error_result(e.kind, str(e), e.to_dict())
        except Exception as e:
            logger.exception(f"Error in tool {name}")
            return _error_result(
                "InternalError", str(e) or type(e).__name__, {"kind": "InternalError"}
            )

        is_error = isinstance(result, MutationResult) and result.is_error
        return ToolResult(
            content=[{"type": "text", "text": format_result(result)}],
            data=result.model_dump(exclude_none=True),
            is_error=is_error,
        )

    async def shutdown(self) -> None:
        logger.info(f"Shutting down language servers for {self.root}")
        await self.supervisor.shutdown()


def _error_result(kind: str, message: str, data: dict[str, Any]) -> ToolResult:
    data.setdefault("message", message)
    return ToolResult(
        content=[{"type": "text", "text": format_error(kind, message)}],
        data=data,
        is_error=True,
    )


def _describe_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors(include_url=False):
        where = ".".join(str(part) for part in item["loc"]) or "arguments"
        problems.append(f"{where}: {item['msg']}")
    return "Invalid arguments:\n" + "\n".join(f"  {p}" for p in problems)
