"""Handler for get_diagnostics."""

from ...lsp.types import DiagnosticSeverity
from ..rpc import DiagnosticInfo, DiagnosticsResult, GetDiagnosticsParams
from .base import HandlerContext

SEVERITY_LEVELS = {"error": 1, "warning": 2, "information": 3, "hint": 4}


def _severity_name(severity: int | None) -> str:
    if severity is None:
        return "error"
    try:
        return DiagnosticSeverity(severity).name.lower()
    except ValueError:
        return "error"


async def handle_get_diagnostics(
    ctx: HandlerContext, params: GetDiagnosticsParams
) -> DiagnosticsResult:
    path = ctx.existing_file(params.file_path)
    report = await ctx.run(path, lambda instance: ctx.diagnostics.collect(instance, path))

    threshold = SEVERITY_LEVELS.get(params.severity or "hint", 4)
    diagnostics = [
        DiagnosticInfo(
            severity=_severity_name(d.severity),
            line=d.range.start.line + 1,
            character=d.range.start.character,
            end_line=d.range.end.line + 1,
            end_character=d.range.end.character,
            message=d.message,
            source=d.source,
            code=str(d.code) if d.code is not None else None,
        )
        for d in report.diagnostics
        if (d.severity or 1) <= threshold
    ]
    diagnostics.sort(key=lambda d: (d.line, d.character))

    return DiagnosticsResult(
        path=ctx.relative_path(path),
        state=report.state.value,
        channel=report.channel,
        diagnostics=diagnostics,
        error=report.error,
    )
