"""Handlers for definition, references and symbol listings."""

import asyncio
import logging

from ...errors import LspmuxError, MethodNotSupported
from ...lsp.types import (
    DocumentSymbol,
    DocumentSymbolParams,
    Location,
    Position,
    ReferenceContext,
    ReferenceParams,
    SymbolInformation,
    TextDocumentIdentifier,
    TextDocumentPositionParams,
    WorkspaceSymbolParams,
    symbol_kind_name,
)
from ...utils.uri import path_to_uri, uri_to_path
from ..resolver import SymbolLocation, resolve_symbol
from ..rpc import (
    DefinitionResult,
    DocumentSymbolsResult,
    FindDefinitionParams,
    FindReferencesParams,
    GetDocumentSymbolsParams,
    LocationInfo,
    ReferencesResult,
    SearchWorkspaceSymbolsParams,
    SymbolInfo,
    WorkspaceSymbolsResult,
)
from .base import HandlerContext

logger = logging.getLogger(__name__)


def _symbol_info(ctx: HandlerContext, location: SymbolLocation) -> SymbolInfo:
    return SymbolInfo(
        name=location.name,
        kind=location.kind,
        path=ctx.relative_path(location.path),
        line=location.line + 1,
        character=location.character,
        container=location.container,
    )


def _declaration_info(ctx: HandlerContext, location: SymbolLocation) -> LocationInfo:
    return LocationInfo(
        path=ctx.relative_path(location.path),
        line=location.line + 1,
        character=location.character,
        end_line=location.line + 1,
        end_character=location.character + len(location.name),
    )


async def handle_find_definition(
    ctx: HandlerContext, params: FindDefinitionParams
) -> DefinitionResult:
    path = ctx.existing_file(params.file_path)

    async def operation(instance):
        symbol = await resolve_symbol(
            instance, path, params.symbol_name, params.symbol_kind, params.strict, ctx.tie_break
        )
        result = await ctx.send(
            instance,
            "textDocument/definition",
            TextDocumentPositionParams(
                textDocument=TextDocumentIdentifier(uri=path_to_uri(path)),
                position=Position(line=symbol.line, character=symbol.character),
            ),
            tool="find_definition",
            capability="definitionProvider",
            sync=path,
        )
        return symbol, result

    symbol, result = await ctx.run(path, operation)
    locations = ctx.format_locations(result, context=1)
    if not locations:
        # The resolved declaration is the definition
        locations = [_declaration_info(ctx, symbol)]

    return DefinitionResult(symbol=_symbol_info(ctx, symbol), locations=locations)


async def handle_find_references(
    ctx: HandlerContext, params: FindReferencesParams
) -> ReferencesResult:
    path = ctx.existing_file(params.file_path)

    async def operation(instance):
        symbol = await resolve_symbol(
            instance, path, params.symbol_name, params.symbol_kind, params.strict, ctx.tie_break
        )
        result = await ctx.send(
            instance,
            "textDocument/references",
            ReferenceParams(
                textDocument=TextDocumentIdentifier(uri=path_to_uri(path)),
                position=Position(line=symbol.line, character=symbol.character),
                context=ReferenceContext(includeDeclaration=params.include_declaration),
            ),
            tool="find_references",
            capability="referencesProvider",
            sync=path,
        )
        return symbol, result

    symbol, result = await ctx.run(path, operation)
    locations = ctx.format_locations(result)

    if params.include_declaration:
        declaration = _declaration_info(ctx, symbol)
        if not any(
            loc.path == declaration.path
            and loc.line == declaration.line
            and loc.character <= declaration.character <= (loc.end_character or loc.character)
            for loc in locations
        ):
            locations.insert(0, declaration)

    locations.sort(key=lambda loc: (loc.path, loc.line, loc.character))
    return ReferencesResult(symbol=_symbol_info(ctx, symbol), locations=locations)


def _flatten_outline(
    items: list[DocumentSymbol] | list[SymbolInformation],
    out: list[SymbolInfo],
    container: str | None = None,
    depth: int = 0,
) -> None:
    for item in items:
        if isinstance(item, DocumentSymbol):
            start = item.selectionRange.start
            out.append(
                SymbolInfo(
                    name=item.name,
                    kind=symbol_kind_name(item.kind),
                    line=start.line + 1,
                    character=start.character,
                    container=container,
                    detail=item.detail,
                    depth=depth,
                )
            )
            _flatten_outline(item.children or [], out, item.name, depth + 1)
        else:
            start = item.location.range.start
            out.append(
                SymbolInfo(
                    name=item.name,
                    kind=symbol_kind_name(item.kind),
                    line=start.line + 1,
                    character=start.character,
                    container=item.containerName or None,
                )
            )


async def handle_get_document_symbols(
    ctx: HandlerContext, params: GetDocumentSymbolsParams
) -> DocumentSymbolsResult:
    path = ctx.existing_file(params.file_path)
    result = await ctx.request(
        path,
        "textDocument/documentSymbol",
        DocumentSymbolParams(textDocument=TextDocumentIdentifier(uri=path_to_uri(path))),
        tool="get_document_symbols",
        capability="documentSymbolProvider",
    )

    symbols: list[SymbolInfo] = []
    _flatten_outline(result or [], symbols)
    return DocumentSymbolsResult(path=ctx.relative_path(path), symbols=symbols)


async def handle_search_workspace_symbols(
    ctx: HandlerContext, params: SearchWorkspaceSymbolsParams
) -> WorkspaceSymbolsResult:
    errors: list[str] = []

    for extension in params.extensions or []:
        try:
            await ctx.supervisor.acquire(extension)
        except LspmuxError as e:
            errors.append(f".{extension.lstrip('.')}: {e}")

    instances = ctx.supervisor.ready_instances()
    if params.extensions:
        wanted = {e.lstrip(".").lower() for e in params.extensions}
        instances = [i for i in instances if wanted & i.extensions]

    async def query(instance):
        client = instance.require_client()
        if not client.capabilities.supports("workspaceSymbolProvider"):
            raise MethodNotSupported("workspace/symbol", instance.name)
        await client.wait_for_indexing(timeout=ctx.supervisor.request_timeout)
        return await client.send_request(
            "workspace/symbol",
            WorkspaceSymbolParams(query=params.query),
            tool="search_workspace_symbols",
        )

    results = await asyncio.gather(*(query(i) for i in instances), return_exceptions=True)

    symbols: list[SymbolInfo] = []
    seen: set[tuple[str, str, int, int]] = set()
    for instance, result in zip(instances, results):
        if isinstance(result, LspmuxError):
            errors.append(f"{instance.name}: {result}")
            continue
        if isinstance(result, BaseException):
            raise result

        for item in result or []:
            if isinstance(item.location, Location):
                start = item.location.range.start
                line, character = start.line + 1, start.character
            else:
                line, character = 1, 0
            rel = ctx.relative_path(uri_to_path(item.location.uri))
            key = (item.name, rel, line, character)
            if key in seen:
                continue
            seen.add(key)
            symbols.append(
                SymbolInfo(
                    name=item.name,
                    kind=symbol_kind_name(item.kind),
                    path=rel,
                    line=line,
                    character=character,
                    container=item.containerName or None,
                )
            )

    if not instances and not errors:
        logger.info("No running servers to search; pass extensions to start one")

    return WorkspaceSymbolsResult(query=params.query, symbols=symbols, errors=errors)