"""Handlers for create_file, rename_file and delete_file.

When the serving language server advertises the matching ``workspace/will*``
file operation it is asked first, and the edits it returns (typically import
updates) are applied ahead of the file operation itself.
"""

import logging
from pathlib import Path
from typing import Any

from ...errors import (
    EditConflict,
    InvalidArguments,
    ServerUnavailable,
    UnderlyingProtocolError,
    UnsupportedFileType,
)
from ...lsp.types import (
    CreateFilesParams,
    DeleteFilesParams,
    FileCreate,
    FileDelete,
    FileRename,
    RenameFilesParams,
)
from ...utils.uri import path_to_uri
from ..mutations import FileChange, Step, build_plan, steps_from_workspace_edit
from ..rpc import CreateFileParams, DeleteFileParams, MutationResult, RenameFileParams
from .base import HandlerContext

logger = logging.getLogger(__name__)


async def _ask_server(
    ctx: HandlerContext, path: Path, method: str, operation: str, params: Any, tool: str
) -> list[Step]:
    async def will(instance):
        client = instance.require_client()
        if not client.capabilities.supports_file_operation(operation):
            return None
        return await client.send_request(method, params, tool=tool)

    try:
        edit = await ctx.run(path, will)
    except UnsupportedFileType:
        return []
    except ServerUnavailable as e:
        logger.warning(f"Continuing without {method}: {e}")
        return []
    except UnderlyingProtocolError as e:
        if not e.is_method_not_found():
            raise
        return []

    if edit is None:
        return []
    return steps_from_workspace_edit(edit)


async def handle_create_file(ctx: HandlerContext, params: CreateFileParams) -> MutationResult:
    path = ctx.resolve_path(params.file_path)
    rel = ctx.relative_path(path)

    if path.is_dir():
        raise InvalidArguments(f"{rel} is a directory")
    if path.exists() and not params.overwrite:
        raise EditConflict(f"{rel} already exists; pass overwrite to replace it")

    steps = await _ask_server(
        ctx,
        path,
        "workspace/willCreateFiles",
        "willCreate",
        CreateFilesParams(files=[FileCreate(uri=path_to_uri(path))]),
        tool="create_file",
    )
    steps.append(FileChange("create", path, content=params.content, overwrite=params.overwrite))

    plan = build_plan(steps, ctx.document_text, ctx.document_version)
    return await ctx.run_plan(plan, "create_file", f"create {rel}", params.dry_run)


async def handle_rename_file(ctx: HandlerContext, params: RenameFileParams) -> MutationResult:
    old_path = ctx.resolve_path(params.old_path)
    new_path = ctx.resolve_path(params.new_path)
    old_rel = ctx.relative_path(old_path)
    new_rel = ctx.relative_path(new_path)

    if not old_path.exists():
        raise EditConflict(f"{old_rel} does not exist")
    if old_path == new_path:
        raise InvalidArguments(f"{old_rel} is already at that path")
    if new_path.exists() and not params.overwrite:
        raise EditConflict(f"{new_rel} already exists; pass overwrite to replace it")

    steps = await _ask_server(
        ctx,
        old_path,
        "workspace/willRenameFiles",
        "willRename",
        RenameFilesParams(
            files=[FileRename(oldUri=path_to_uri(old_path), newUri=path_to_uri(new_path))]
        ),
        tool="rename_file",
    )

    # Some servers include the move itself in their edit
    already_moved = any(
        isinstance(s, FileChange)
        and s.kind == "rename"
        and s.path == old_path
        and s.new_path == new_path
        for s in steps
    )
    if not already_moved:
        steps.append(FileChange("rename", old_path, new_path=new_path, overwrite=params.overwrite))

    plan = build_plan(steps, ctx.document_text, ctx.document_version)
    return await ctx.run_plan(plan, "rename_file", f"rename {old_rel} to {new_rel}", params.dry_run)


async def handle_delete_file(ctx: HandlerContext, params: DeleteFileParams) -> MutationResult:
    path = ctx.resolve_path(params.file_path)
    rel = ctx.relative_path(path)

    if not path.exists():
        raise EditConflict(f"{rel} does not exist")

    steps = await _ask_server(
        ctx,
        path,
        "workspace/willDeleteFiles",
        "willDelete",
        DeleteFilesParams(files=[FileDelete(uri=path_to_uri(path))]),
        tool="delete_file",
    )
    steps.append(FileChange("delete", path, recursive=path.is_dir()))

    plan = build_plan(steps, ctx.document_text, ctx.document_version)
    return await ctx.run_plan(plan, "delete_file", f"delete {rel}", params.dry_run)
