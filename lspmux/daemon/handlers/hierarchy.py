"""Call and type hierarchy handlers.

Prepare calls return the server's items verbatim so a caller can hand any of
them back to the expand calls. Nothing is remembered between the phases.
"""

from ...lsp.types import CallHierarchyItemParams, TypeHierarchyItemParams
from ...utils.uri import uri_to_path
from ..rpc import (
    CallHierarchyCallsParams,
    CallHierarchyCallsResult,
    CallInfo,
    PrepareCallHierarchyParams,
    PrepareHierarchyResult,
    PrepareTypeHierarchyParams,
    TypeHierarchyNeighborsParams,
    TypeHierarchyResult,
)
from .base import HandlerContext, range_info


async def handle_prepare_call_hierarchy(
    ctx: HandlerContext, params: PrepareCallHierarchyParams
) -> PrepareHierarchyResult:
    path = ctx.existing_file(params.file_path)
    result = await ctx.request(
        path,
        "textDocument/prepareCallHierarchy",
        ctx.position_params(path, params.line, params.character),
        tool="prepare_call_hierarchy",
        capability="callHierarchyProvider",
    )
    return PrepareHierarchyResult(
        hierarchy="call",
        path=ctx.relative_path(path),
        line=params.line,
        character=params.character,
        items=[ctx.hierarchy_node(item) for item in result or []],
    )


async def handle_prepare_type_hierarchy(
    ctx: HandlerContext, params: PrepareTypeHierarchyParams
) -> PrepareHierarchyResult:
    path = ctx.existing_file(params.file_path)
    result = await ctx.request(
        path,
        "textDocument/prepareTypeHierarchy",
        ctx.position_params(path, params.line, params.character),
        tool="prepare_type_hierarchy",
        capability="typeHierarchyProvider",
    )
    return PrepareHierarchyResult(
        hierarchy="type",
        path=ctx.relative_path(path),
        line=params.line,
        character=params.character,
        items=[ctx.hierarchy_node(item) for item in result or []],
    )


async def handle_get_call_hierarchy_incoming_calls(
    ctx: HandlerContext, params: CallHierarchyCallsParams
) -> CallHierarchyCallsResult:
    result = await ctx.request(
        uri_to_path(params.item.uri),
        "callHierarchy/incomingCalls",
        CallHierarchyItemParams(item=params.item),
        tool="get_call_hierarchy_incoming_calls",
        capability="callHierarchyProvider",
        sync=False,
    )
    calls = [
        CallInfo(
            node=ctx.hierarchy_node(call.from_),
            from_ranges=[range_info(r) for r in call.fromRanges],
        )
        for call in result or []
    ]
    return CallHierarchyCallsResult(direction="incoming", item_name=params.item.name, calls=calls)


async def handle_get_call_hierarchy_outgoing_calls(
    ctx: HandlerContext, params: CallHierarchyCallsParams
) -> CallHierarchyCallsResult:
    result = await ctx.request(
        uri_to_path(params.item.uri),
        "callHierarchy/outgoingCalls",
        CallHierarchyItemParams(item=params.item),
        tool="get_call_hierarchy_outgoing_calls",
        capability="callHierarchyProvider",
        sync=False,
    )
    calls = [
        CallInfo(
            node=ctx.hierarchy_node(call.to),
            from_ranges=[range_info(r) for r in call.fromRanges],
        )
        for call in result or []
    ]
    return CallHierarchyCallsResult(direction="outgoing", item_name=params.item.name, calls=calls)


async def handle_get_type_hierarchy_supertypes(
    ctx: HandlerContext, params: TypeHierarchyNeighborsParams
) -> TypeHierarchyResult:
    result = await ctx.request(
        uri_to_path(params.item.uri),
        "typeHierarchy/supertypes",
        TypeHierarchyItemParams(item=params.item),
        tool="get_type_hierarchy_supertypes",
        capability="typeHierarchyProvider",
        sync=False,
    )
    return TypeHierarchyResult(
        direction="supertypes",
        item_name=params.item.name,
        items=[ctx.hierarchy_node(item) for item in result or []],
    )


async def handle_get_type_hierarchy_subtypes(
    ctx: HandlerContext, params: TypeHierarchyNeighborsParams
) -> TypeHierarchyResult:
    result = await ctx.request(
        uri_to_path(params.item.uri),
        "typeHierarchy/subtypes",
        TypeHierarchyItemParams(item=params.item),
        tool="get_type_hierarchy_subtypes",
        capability="typeHierarchyProvider",
        sync=False,
    )
    return TypeHierarchyResult(
        direction="subtypes",
        item_name=params.item.name,
        items=[ctx.hierarchy_node(item) for item in result or []],
    )
