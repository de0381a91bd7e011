"""Handlers for symbol renames."""

import logging

from ...lsp.types import Position
from ..mutations import plan_from_workspace_edit
from ..resolver import resolve_symbol
from ..rpc import MutationResult, RenameSymbolParams, RenameSymbolStrictParams
from .base import HandlerContext

logger = logging.getLogger(__name__)


async def handle_rename_symbol(
    ctx: HandlerContext, params: RenameSymbolParams
) -> MutationResult:
    logger.info(f"Rename request: {params.symbol_name} in {params.file_path} -> {params.new_name}")
    path = ctx.existing_file(params.file_path)

    async def operation(instance):
        symbol = await resolve_symbol(
            instance, path, params.symbol_name, params.symbol_kind, params.strict, ctx.tie_break
        )
        return await ctx.rename_at(
            instance,
            path,
            Position(line=symbol.line, character=symbol.character),
            params.new_name,
            tool="rename_symbol",
        )

    edit = await ctx.run(path, operation)
    plan = plan_from_workspace_edit(edit, ctx.document_text, ctx.document_version)
    return await ctx.run_plan(
        plan,
        "rename_symbol",
        f"rename '{params.symbol_name}' to '{params.new_name}'",
        params.dry_run,
    )


async def handle_rename_symbol_strict(
    ctx: HandlerContext, params: RenameSymbolStrictParams
) -> MutationResult:
    logger.info(
        f"Rename request: {params.file_path}:{params.line}:{params.character} -> {params.new_name}"
    )
    path = ctx.existing_file(params.file_path)
    position = ctx.to_position(params.line, params.character)

    edit = await ctx.run(
        path,
        lambda instance: ctx.rename_at(
            instance, path, position, params.new_name, tool="rename_symbol_strict"
        ),
    )
    plan = plan_from_workspace_edit(edit, ctx.document_text, ctx.document_version)
    return await ctx.run_plan(
        plan,
        "rename_symbol_strict",
        f"rename symbol at {ctx.relative_path(path)}:{params.line}:{params.character} "
        f"to '{params.new_name}'",
        params.dry_run,
    )
