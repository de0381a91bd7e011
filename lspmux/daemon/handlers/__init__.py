from .diagnostics import handle_get_diagnostics
from .document import (
    handle_get_document_links,
    handle_get_folding_ranges,
    handle_get_selection_range,
)
from .edits import handle_apply_workspace_edit, handle_format_document
from .files import handle_create_file, handle_delete_file, handle_rename_file
from .hierarchy import (
    handle_get_call_hierarchy_incoming_calls,
    handle_get_call_hierarchy_outgoing_calls,
    handle_get_type_hierarchy_subtypes,
    handle_get_type_hierarchy_supertypes,
    handle_prepare_call_hierarchy,
    handle_prepare_type_hierarchy,
)
from .intelligence import (
    handle_get_code_actions,
    handle_get_completions,
    handle_get_hover,
    handle_get_inlay_hints,
    handle_get_semantic_tokens,
    handle_get_signature_help,
)
from .navigation import (
    handle_find_definition,
    handle_find_references,
    handle_get_document_symbols,
    handle_search_workspace_symbols,
)
from .rename import handle_rename_symbol, handle_rename_symbol_strict
from .server_control import handle_restart_server

__all__ = [
    "handle_apply_workspace_edit",
    "handle_create_file",
    "handle_delete_file",
    "handle_find_definition",
    "handle_find_references",
    "handle_format_document",
    "handle_get_call_hierarchy_incoming_calls",
    "handle_get_call_hierarchy_outgoing_calls",
    "handle_get_code_actions",
    "handle_get_completions",
    "handle_get_diagnostics",
    "handle_get_document_links",
    "handle_get_document_symbols",
    "handle_get_folding_ranges",
    "handle_get_hover",
    "handle_get_inlay_hints",
    "handle_get_selection_range",
    "handle_get_semantic_tokens",
    "handle_get_signature_help",
    "handle_get_type_hierarchy_subtypes",
    "handle_get_type_hierarchy_supertypes",
    "handle_prepare_call_hierarchy",
    "handle_prepare_type_hierarchy",
    "handle_rename_file",
    "handle_rename_symbol",
    "handle_rename_symbol_strict",
    "handle_restart_server",
    "handle_search_workspace_symbols",
]
