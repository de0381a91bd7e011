"""Handlers for formatting and caller-supplied workspace edits."""

from ...lsp.types import DocumentFormattingParams, FormattingOptions, TextDocumentIdentifier
from ...utils.uri import path_to_uri
from ..mutations import TextChange, build_plan, text_changes_from_edits
from ..rpc import ApplyWorkspaceEditParams, FormatDocumentParams, MutationResult
from .base import HandlerContext


async def handle_format_document(
    ctx: HandlerContext, params: FormatDocumentParams
) -> MutationResult:
    path = ctx.existing_file(params.file_path)
    requested = params.options
    options = FormattingOptions(
        tabSize=(requested and requested.tab_size) or ctx.formatting.get("tab_size", 4),
        insertSpaces=(
            requested.insert_spaces
            if requested and requested.insert_spaces is not None
            else ctx.formatting.get("insert_spaces", True)
        ),
    )

    edits = await ctx.request(
        path,
        "textDocument/formatting",
        DocumentFormattingParams(
            textDocument=TextDocumentIdentifier(uri=path_to_uri(path)), options=options
        ),
        tool="format_document",
        capability="documentFormattingProvider",
    )

    plan = build_plan(
        text_changes_from_edits(path, edits or []), ctx.document_text, ctx.document_version
    )
    return await ctx.run_plan(
        plan, "format_document", f"format {ctx.relative_path(path)}", params.dry_run
    )


async def handle_apply_workspace_edit(
    ctx: HandlerContext, params: ApplyWorkspaceEditParams
) -> MutationResult:
    steps = []
    for target, edits in params.changes.items():
        path = ctx.resolve_path(target)
        for edit in edits:
            steps.append(TextChange(path, edit.range, edit.newText))

    plan = build_plan(steps, ctx.document_text, ctx.document_version)
    files = len(params.changes)
    return await ctx.run_plan(
        plan,
        "apply_workspace_edit",
        f"apply workspace edit ({len(steps)} edit(s) in {files} file(s))",
        params.dry_run,
        validate=params.validate_before_apply,
    )
