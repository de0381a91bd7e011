"""Turn a symbol name into the position the server expects.

Every call re-reads the document outline; nothing is cached, so edits made
between two calls are always seen.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import AmbiguousSymbol, SymbolNotFound
from ..lsp.types import (
    DocumentSymbol,
    DocumentSymbolParams,
    SymbolInformation,
    TextDocumentIdentifier,
    symbol_kind_name,
)
from ..utils.text import find_name_in_line, get_line_at
from ..utils.uri import path_to_uri

logger = logging.getLogger(__name__)

PREFERRED_KINDS = {
    "Class",
    "Struct",
    "Interface",
    "Enum",
    "Module",
    "Namespace",
    "Package",
}


@dataclass(frozen=True)
class SymbolLocation:
    path: Path
    line: int
    character: int
    name: str
    kind: str
    container: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "line": self.line + 1,
            "character": self.character,
            "container": self.container,
        }


async def list_symbols(instance: Any, path: Path) -> list[SymbolLocation]:
    """Flattened outline of ``path`` in declaration order."""
    doc = await instance.ensure_document_open(path)
    client = instance.require_client()
    result = await client.send_request(
        "textDocument/documentSymbol",
        DocumentSymbolParams(textDocument=TextDocumentIdentifier(uri=path_to_uri(path))),
    )

    symbols: list[SymbolLocation] = []
    for item in result or []:
        if isinstance(item, DocumentSymbol):
            _flatten_document_symbol(item, path, None, symbols)
        elif isinstance(item, SymbolInformation):
            symbols.append(_from_symbol_information(item, path, doc.content))

    symbols.sort(key=lambda s: (s.line, s.character))
    return symbols


def _flatten_document_symbol(
    sym: DocumentSymbol, path: Path, container: str | None, out: list[SymbolLocation]
) -> None:
    start = sym.selectionRange.start
    out.append(
        SymbolLocation(
            path=path,
            line=start.line,
            character=start.character,
            name=sym.name,
            kind=symbol_kind_name(sym.kind),
            container=container,
        )
    )
    for child in sym.children or []:
        _flatten_document_symbol(child, path, sym.name, out)


def _from_symbol_information(sym: SymbolInformation, path: Path, content: str) -> SymbolLocation:
    start = sym.location.range.start
    line = start.line
    character = start.character
    # Only the full declaration range is known; find the name on its first line
    column = find_name_in_line(get_line_at(content, line), normalize_symbol_name(sym.name))
    if column is not None:
        character = column
    return SymbolLocation(
        path=path,
        line=line,
        character=character,
        name=sym.name,
        kind=symbol_kind_name(sym.kind),
        container=sym.containerName or None,
    )


def normalize_symbol_name(name: str) -> str:
    match = re.match(r"^(\w+)\([^)]*\)$", name)
    if match:
        return match.group(1)
    match = re.match(r"^\(\*?\w+\)\.(\w+)$", name)
    if match:
        return match.group(1)
    if ":" in name:
        return name.split(":")[-1]
    if "." in name:
        return name.split(".")[-1]
    return name


def _qualified_names(sym: SymbolLocation) -> set[str]:
    names = {normalize_symbol_name(sym.name)}
    if sym.container:
        names.add(f"{normalize_symbol_name(sym.container)}.{normalize_symbol_name(sym.name)}")
    go_receiver = re.match(r"^\(\*?(\w+)\)\.(\w+)$", sym.name)
    if go_receiver:
        names.add(f"{go_receiver.group(1)}.{go_receiver.group(2)}")
    return names


def _tiers(symbols: list[SymbolLocation], name: str) -> list[list[SymbolLocation]]:
    lowered = name.lower()
    return [
        [s for s in symbols if s.name == name],
        [s for s in symbols if name in _qualified_names(s)],
        [
            s
            for s in symbols
            if s.name.lower() == lowered or lowered in {n.lower() for n in _qualified_names(s)}
        ],
    ]


async def resolve_symbol(
    instance: Any,
    path: Path,
    name: str,
    kind: str | None = None,
    strict: bool = False,
    tie_break: str = "declaration",
) -> SymbolLocation:
    symbols = await list_symbols(instance, path)

    if kind:
        symbols = [s for s in symbols if s.kind.lower() == kind.lower()]

    for candidates in _tiers(symbols, name):
        if not candidates:
            continue

        if len(candidates) == 1:
            return candidates[0]

        if strict:
            raise AmbiguousSymbol(name, [c.to_dict() for c in candidates])

        if tie_break == "prefer_types":
            type_matches = [c for c in candidates if c.kind in PREFERRED_KINDS]
            if len(type_matches) == 1:
                return type_matches[0]

        logger.debug(f"'{name}' matched {len(candidates)} symbols, using the first declared")
        return candidates[0]

    available = sorted({s.name for s in symbols})
    hint = ""
    if available:
        shown = ", ".join(available[:10])
        more = f" and {len(available) - 10} more" if len(available) > 10 else ""
        hint = f". Available symbols: {shown}{more}"
    kind_note = f" of kind {kind}" if kind else ""
    raise SymbolNotFound(f"Symbol '{name}'{kind_note} not found in {path.name}{hint}")
