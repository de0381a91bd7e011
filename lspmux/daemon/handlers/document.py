"""Handlers for folding ranges, document links and selection ranges."""

from ...lsp.types import (
    SelectionRangeParams,
    TextDocumentIdentifier,
    TextDocumentParams,
)
from ...utils.uri import path_to_uri
from ..rpc import (
    DocumentLinkInfo,
    DocumentLinksResult,
    FoldingRangeInfo,
    FoldingRangesResult,
    GetDocumentLinksParams,
    GetFoldingRangesParams,
    GetSelectionRangeParams,
    RangeInfo,
    SelectionRangeInfo,
    SelectionRangesResult,
)
from .base import HandlerContext, range_info


async def handle_get_folding_ranges(
    ctx: HandlerContext, params: GetFoldingRangesParams
) -> FoldingRangesResult:
    path = ctx.existing_file(params.file_path)
    result = await ctx.request(
        path,
        "textDocument/foldingRange",
        TextDocumentParams(textDocument=TextDocumentIdentifier(uri=path_to_uri(path))),
        tool="get_folding_ranges",
        capability="foldingRangeProvider",
    )
    ranges = [
        FoldingRangeInfo(start_line=r.startLine + 1, end_line=r.endLine + 1, kind=r.kind)
        for r in result or []
    ]
    ranges.sort(key=lambda r: (r.start_line, r.end_line))
    return FoldingRangesResult(path=ctx.relative_path(path), ranges=ranges)


async def handle_get_document_links(
    ctx: HandlerContext, params: GetDocumentLinksParams
) -> DocumentLinksResult:
    path = ctx.existing_file(params.file_path)
    result = await ctx.request(
        path,
        "textDocument/documentLink",
        TextDocumentParams(textDocument=TextDocumentIdentifier(uri=path_to_uri(path))),
        tool="get_document_links",
        capability="documentLinkProvider",
    )
    links = [
        DocumentLinkInfo(range=range_info(link.range), target=link.target, tooltip=link.tooltip)
        for link in result or []
    ]
    return DocumentLinksResult(path=ctx.relative_path(path), links=links)


async def handle_get_selection_range(
    ctx: HandlerContext, params: GetSelectionRangeParams
) -> SelectionRangesResult:
    path = ctx.existing_file(params.file_path)
    result = await ctx.request(
        path,
        "textDocument/selectionRange",
        SelectionRangeParams(
            textDocument=TextDocumentIdentifier(uri=path_to_uri(path)),
            positions=[ctx.to_position(p.line, p.character) for p in params.positions],
        ),
        tool="get_selection_range",
        capability="selectionRangeProvider",
    )

    selections: list[SelectionRangeInfo] = []
    for position, selection in zip(params.positions, result or []):
        chain: list[RangeInfo] = []
        current = selection
        while current is not None:
            chain.append(range_info(current.range))
            current = current.parent
        selections.append(
            SelectionRangeInfo(line=position.line, character=position.character, ranges=chain)
        )
    return SelectionRangesResult(path=ctx.relative_path(path), selections=selections)
