import json
from functools import singledispatch

from pydantic import BaseModel

from ..daemon.rpc import (
    CallHierarchyCallsResult,
    CodeActionsResult,
    CompletionsResult,
    DefinitionResult,
    DiagnosticsResult,
    DocumentLinksResult,
    DocumentSymbolsResult,
    FoldingRangesResult,
    HierarchyNode,
    HoverResult,
    InlayHintsResult,
    LocationInfo,
    MutationResult,
    PrepareHierarchyResult,
    RangeInfo,
    ReferencesResult,
    RestartResult,
    SelectionRangesResult,
    SemanticTokensResult,
    ServerStatus,
    SignatureHelpResult,
    SymbolInfo,
    TypeHierarchyResult,
    WorkspaceSymbolsResult,
)


def format_result(result: BaseModel, output_format: str = "plain") -> str:
    if output_format == "json":
        return json.dumps(result.model_dump(exclude_none=True), indent=2)
    return format_model(result)


def format_error(kind: str, message: str) -> str:
    return f"Error [{kind}]: {message}"


@singledispatch
def format_model(result: BaseModel) -> str:
    return json.dumps(result.model_dump(exclude_none=True), indent=2)


@format_model.register
def _(result: DefinitionResult) -> str:
    sym = result.symbol
    lines = [
        f"Results for {sym.kind} '{sym.name}' declared at {sym.path} line {sym.line}",
        f"{len(result.locations)} definition location(s):",
        "",
        _format_locations(result.locations),
    ]
    return "\n".join(lines)


@format_model.register
def _(result: ReferencesResult) -> str:
    sym = result.symbol
    header = (
        f"References for '{sym.name}' ({sym.kind}, {sym.path} line {sym.line}): "
        f"{len(result.locations)} location(s)"
    )
    return "\n".join([header, "", _format_locations(result.locations)])


@format_model.register
def _(result: DocumentSymbolsResult) -> str:
    if not result.symbols:
        return f"{result.path} has no document symbols"
    lines = [f"Symbols in {result.path}:"]
    for sym in result.symbols:
        lines.append("  " * (sym.depth + 1) + _symbol_line(sym, with_path=False))
    return "\n".join(lines)


@format_model.register
def _(result: WorkspaceSymbolsResult) -> str:
    lines = [f"{len(result.symbols)} workspace symbol(s) matching '{result.query}'"]
    lines.extend(f"  {_symbol_line(sym)}" for sym in result.symbols)
    for error in result.errors:
        lines.append(f"  (skipped) {error}")
    return "\n".join(lines)


@format_model.register
def _(result: HoverResult) -> str:
    where = f"{result.path}:{result.line}:{result.character}"
    if not result.contents:
        return f"No hover information at {where}"
    return f"Hover at {where}:\n\n{result.contents}"


@format_model.register
def _(result: CompletionsResult) -> str:
    where = f"{result.path}:{result.line}:{result.character}"
    shown = len(result.items)
    header = f"{result.total} completion(s) at {where}"
    if shown < result.total:
        header += f" (showing {shown})"
    if result.is_incomplete:
        header += " [incomplete]"
    lines = [header]
    for item in result.items:
        parts = [f"  {item.label}"]
        if item.kind:
            parts.append(f"[{item.kind}]")
        if item.detail:
            parts.append(item.detail)
        lines.append(" ".join(parts))
    return "\n".join(lines)


@format_model.register
def _(result: SignatureHelpResult) -> str:
    where = f"{result.path}:{result.line}:{result.character}"
    if not result.signatures:
        return f"No signature help at {where}"
    lines = [f"Signature help at {where}:"]
    for index, sig in enumerate(result.signatures):
        marker = "*" if index == result.active_signature else " "
        lines.append(f" {marker} {sig.label}")
        if sig.active_parameter is not None and sig.active_parameter < len(sig.parameters):
            lines.append(f"     active parameter: {sig.parameters[sig.active_parameter]}")
        if sig.documentation:
            lines.extend(f"     {doc}" for doc in sig.documentation.strip().splitlines())
    return "\n".join(lines)


@format_model.register
def _(result: InlayHintsResult) -> str:
    lines = [f"{len(result.hints)} inlay hint(s) in {result.path}"]
    for hint in result.hints:
        kind = f" [{hint.kind}]" if hint.kind else ""
        lines.append(f"  {hint.line}:{hint.character}{kind} {hint.label}")
    return "\n".join(lines)


@format_model.register
def _(result: SemanticTokensResult) -> str:
    lines = [f"{len(result.tokens)} semantic token(s) in {result.path}"]
    for token in result.tokens:
        modifiers = f" ({', '.join(token.modifiers)})" if token.modifiers else ""
        lines.append(f"  {token.line}:{token.character} {token.token_type}{modifiers} {token.text}")
    return "\n".join(lines)


@format_model.register
def _(result: CodeActionsResult) -> str:
    header = (
        f"{len(result.actions)} code action(s) available for {result.path} "
        f"{_format_range(result.range)}"
    )
    lines = [header]
    for action in result.actions:
        parts = [f"  - {action.title}"]
        if action.kind:
            parts.append(f"[{action.kind}]")
        if action.is_preferred:
            parts.append("(preferred)")
        if action.command and not action.has_edit:
            parts.append(f"runs {action.command}")
        lines.append(" ".join(parts))
    return "\n".join(lines)


@format_model.register
def _(result: FoldingRangesResult) -> str:
    lines = [f"{len(result.ranges)} folding range(s) in {result.path}"]
    for r in result.ranges:
        kind = f" [{r.kind}]" if r.kind else ""
        lines.append(f"  lines {r.start_line}-{r.end_line}{kind}")
    return "\n".join(lines)


@format_model.register
def _(result: DocumentLinksResult) -> str:
    lines = [f"{len(result.links)} document link(s) in {result.path}"]
    for link in result.links:
        target = link.target or "(unresolved)"
        lines.append(f"  {_format_range(link.range)} -> {target}")
    return "\n".join(lines)


@format_model.register
def _(result: SelectionRangesResult) -> str:
    lines = [f"Selection ranges in {result.path}"]
    for selection in result.selections:
        lines.append(f"  at {selection.line}:{selection.character}:")
        lines.extend(f"    {_format_range(r)}" for r in selection.ranges)
    return "\n".join(lines)


@format_model.register
def _(result: DiagnosticsResult) -> str:
    if result.state == "not_yet_analyzed":
        return (
            f"{result.path} has not been analyzed yet (not yet analyzed, "
            "no diagnostics were reported in time). Try again shortly."
        )
    if result.state == "error":
        return f"Diagnostics unavailable for {result.path}: {result.error}"
    if not result.diagnostics:
        return f"No diagnostics found in {result.path}"

    lines = [f"Found {len(result.diagnostics)} diagnostic(s) in {result.path}:"]
    for d in result.diagnostics:
        origin = ", ".join(filter(None, [d.source, d.code]))
        suffix = f" [{origin}]" if origin else ""
        lines.append(f"  {d.severity.capitalize()}: {d.line}:{d.character} {d.message}{suffix}")
    return "\n".join(lines)


@format_model.register
def _(result: PrepareHierarchyResult) -> str:
    where = f"{result.path}:{result.line}:{result.character}"
    if not result.items:
        return f"No {result.hierarchy} hierarchy item at {where}"
    lines = [f"{result.hierarchy.capitalize()} hierarchy item(s) at {where}:"]
    for node in result.items:
        lines.append(f"  {_node_line(node)}")
        lines.append(f"    item: {json.dumps(node.item)}")
    return "\n".join(lines)


@format_model.register
def _(result: CallHierarchyCallsResult) -> str:
    if result.direction == "incoming":
        header = f"{len(result.calls)} incoming call(s) to '{result.item_name}'"
        relation = "from"
    else:
        header = f"{len(result.calls)} outgoing call(s) from '{result.item_name}'"
        relation = "to"
    lines = [header]
    for call in result.calls:
        lines.append(f"  {relation} {_node_line(call.node)}")
        for r in call.from_ranges:
            lines.append(f"    call site {_format_range(r)}")
    return "\n".join(lines)


@format_model.register
def _(result: TypeHierarchyResult) -> str:
    label = "supertype(s)" if result.direction == "supertypes" else "subtype(s)"
    lines = [f"{len(result.items)} {label} of '{result.item_name}'"]
    lines.extend(f"  {_node_line(node)}" for node in result.items)
    return "\n".join(lines)


@format_model.register
def _(result: MutationResult) -> str:
    if result.dry_run:
        lines = [f"[DRY RUN] Would {result.summary}"]
    elif result.state == "partial":
        lines = [
            f"Partially applied {result.summary}: writing {result.failed_path} failed "
            f"({result.failure})"
        ]
    else:
        lines = [f"Successfully applied {result.summary}"]

    if result.changes:
        lines.append("")
        lines.append(f"{len(result.changes)} change(s):")
        for change in result.changes:
            lines.append(f"  {change.path}:{change.line}:{change.character}")
            lines.append(f"    - {change.before}")
            lines.append(f"    + {change.after}")

    if result.file_operations:
        lines.append("")
        lines.append("File operations:")
        lines.extend(f"  {op}" for op in result.file_operations)

    if result.files_changed:
        lines.append("")
        verb = "Would change" if result.dry_run else "Changed"
        lines.append(f"{verb} {len(result.files_changed)} file(s):")
        lines.extend(f"  {f}" for f in result.files_changed)
    elif not result.changes and not result.file_operations:
        lines.append("No changes")

    if result.not_attempted:
        lines.append("")
        lines.append("Not attempted:")
        lines.extend(f"  {step}" for step in result.not_attempted)

    if result.notes:
        lines.append("")
        lines.append("Notes:")
        lines.extend(f"  {note}" for note in result.notes)

    if result.dry_run and result.diff:
        lines.append("")
        lines.append(result.diff.rstrip("\n"))

    return "\n".join(lines)


@format_model.register
def _(result: RestartResult) -> str:
    if result.restarted:
        header = f"Restarted {len(result.restarted)} server group(s): {', '.join(result.restarted)}"
    else:
        header = "No running server matched, nothing restarted"
    if not result.servers:
        return header
    return header + "\n\n" + format_servers(result.servers)


def format_servers(servers: list[ServerStatus]) -> str:
    lines: list[str] = []
    for status in servers:
        exts = ", ".join(f".{e}" for e in status.extensions)
        pid = f" pid {status.pid}" if status.pid else ""
        lines.append(f"{status.group} ({status.server}): {status.state}{pid} [{exts}]")
        if status.pending:
            lines.append(f"  pending requests: {status.pending}")
        if status.open_documents:
            lines.append(f"  open documents: {len(status.open_documents)}")
        if status.last_error:
            lines.append(f"  last error: {status.last_error}")
    return "\n".join(lines)


def _format_locations(locations: list[LocationInfo]) -> str:
    lines: list[str] = []
    for loc in locations:
        if loc.context:
            context_start = loc.context_start or loc.line
            context_end = context_start + len(loc.context) - 1
            lines.append(f"{loc.path} line {loc.line}, character {loc.character}")
            for offset, context_line in enumerate(loc.context):
                number = context_start + offset
                marker = ">" if number == loc.line else " "
                lines.append(f"{marker}{number:>5} | {context_line}")
            if context_end > context_start:
                lines.append("")
        else:
            lines.append(f"{loc.path} line {loc.line}, character {loc.character}")
    return "\n".join(lines).rstrip("\n")


def _symbol_line(sym: SymbolInfo, with_path: bool = True) -> str:
    location = f"{sym.path}:{sym.line}" if with_path and sym.path else f"line {sym.line}"
    parts = [f"[{sym.kind}]", sym.name, location]
    if sym.detail:
        parts.append(f"({sym.detail})")
    if sym.container and with_path:
        parts.append(f"in {sym.container}")
    return " ".join(parts)


def _node_line(node: HierarchyNode) -> str:
    parts = [f"[{node.kind}]", node.name, f"{node.path}:{node.line}:{node.character}"]
    if node.detail:
        parts.append(f"({node.detail})")
    return " ".join(parts)


def _format_range(r: RangeInfo) -> str:
    return f"{r.line}:{r.character}-{r.end_line}:{r.end_character}"
