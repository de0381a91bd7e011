"""Handlers for hover, completion, signatures, inlay hints, semantic tokens and code actions."""

from ...lsp.types import (
    CodeAction,
    CodeActionContext,
    CodeActionParams,
    CompletionContext,
    CompletionItemKind,
    CompletionParams,
    Position,
    Range,
    RangeParams,
    TextDocumentIdentifier,
    TextDocumentParams,
)
from ...utils.text import split_lines, utf16_length, utf16_to_index
from ...utils.uri import path_to_uri
from ..rpc import (
    CodeActionInfo,
    CodeActionsResult,
    CompletionInfo,
    CompletionsResult,
    GetCodeActionsParams,
    GetCompletionsParams,
    GetHoverParams,
    GetInlayHintsParams,
    GetSemanticTokensParams,
    GetSignatureHelpParams,
    HoverResult,
    InlayHintInfo,
    InlayHintsResult,
    SemanticTokenInfo,
    SemanticTokensResult,
    SignatureHelpResult,
    SignatureInfo,
)
from .base import HandlerContext, documentation_text, hover_text, range_info

INLAY_HINT_KINDS = {1: "type", 2: "parameter"}


async def handle_get_hover(ctx: HandlerContext, params: GetHoverParams) -> HoverResult:
    path = ctx.existing_file(params.file_path)
    result = await ctx.request(
        path,
        "textDocument/hover",
        ctx.position_params(path, params.line, params.character),
        tool="get_hover",
        capability="hoverProvider",
    )
    return HoverResult(
        path=ctx.relative_path(path),
        line=params.line,
        character=params.character,
        contents=hover_text(result),
        range=range_info(result.range) if result is not None and result.range else None,
    )


def _completion_kind(kind: int | None) -> str | None:
    if kind is None:
        return None
    try:
        return CompletionItemKind(kind).name
    except ValueError:
        return None


async def handle_get_completions(
    ctx: HandlerContext, params: GetCompletionsParams
) -> CompletionsResult:
    path = ctx.existing_file(params.file_path)
    position = ctx.position_params(path, params.line, params.character)
    if params.trigger_character:
        context = CompletionContext(triggerKind=2, triggerCharacter=params.trigger_character)
    else:
        context = CompletionContext(triggerKind=1)

    result = await ctx.request(
        path,
        "textDocument/completion",
        CompletionParams(
            textDocument=position.textDocument, position=position.position, context=context
        ),
        tool="get_completions",
        capability="completionProvider",
    )

    items = list(result.items) if result else []
    items.sort(key=lambda item: item.sortText or item.label)
    return CompletionsResult(
        path=ctx.relative_path(path),
        line=params.line,
        character=params.character,
        is_incomplete=bool(result and result.isIncomplete),
        total=len(items),
        items=[
            CompletionInfo(
                label=item.label,
                kind=_completion_kind(item.kind),
                detail=item.detail,
                documentation=documentation_text(item.documentation),
                insert_text=item.insertText,
            )
            for item in items[: params.limit]
        ],
    )


async def handle_get_signature_help(
    ctx: HandlerContext, params: GetSignatureHelpParams
) -> SignatureHelpResult:
    path = ctx.existing_file(params.file_path)
    result = await ctx.request(
        path,
        "textDocument/signatureHelp",
        ctx.position_params(path, params.line, params.character),
        tool="get_signature_help",
        capability="signatureHelpProvider",
    )

    signatures: list[SignatureInfo] = []
    if result is not None:
        for sig in result.signatures:
            labels: list[str] = []
            for param in sig.parameters or []:
                if isinstance(param.label, str):
                    labels.append(param.label)
                else:
                    start, end = param.label
                    labels.append(
                        sig.label[utf16_to_index(sig.label, start) : utf16_to_index(sig.label, end)]
                    )
            signatures.append(
                SignatureInfo(
                    label=sig.label,
                    documentation=documentation_text(sig.documentation),
                    parameters=labels,
                    active_parameter=(
                        sig.activeParameter
                        if sig.activeParameter is not None
                        else result.activeParameter
                    ),
                )
            )

    return SignatureHelpResult(
        path=ctx.relative_path(path),
        line=params.line,
        character=params.character,
        signatures=signatures,
        active_signature=result.activeSignature if result is not None else None,
    )


async def handle_get_inlay_hints(
    ctx: HandlerContext, params: GetInlayHintsParams
) -> InlayHintsResult:
    path = ctx.existing_file(params.file_path)
    range_ = Range(
        start=ctx.to_position(params.start_line, params.start_character),
        end=ctx.to_position(params.end_line, params.end_character),
    )
    result = await ctx.request(
        path,
        "textDocument/inlayHint",
        RangeParams(textDocument=TextDocumentIdentifier(uri=path_to_uri(path)), range=range_),
        tool="get_inlay_hints",
        capability="inlayHintProvider",
    )

    hints: list[InlayHintInfo] = []
    for hint in result or []:
        if isinstance(hint.label, str):
            label = hint.label
        else:
            label = "".join(part.value for part in hint.label)
        hints.append(
            InlayHintInfo(
                line=hint.position.line + 1,
                character=hint.position.character,
                label=label,
                kind=INLAY_HINT_KINDS.get(hint.kind or 0),
            )
        )
    return InlayHintsResult(path=ctx.relative_path(path), hints=hints)


async def handle_get_semantic_tokens(
    ctx: HandlerContext, params: GetSemanticTokensParams
) -> SemanticTokensResult:
    path = ctx.existing_file(params.file_path)

    async def operation(instance):
        result = await ctx.send(
            instance,
            "textDocument/semanticTokens/full",
            TextDocumentParams(textDocument=TextDocumentIdentifier(uri=path_to_uri(path))),
            tool="get_semantic_tokens",
            capability="semanticTokensProvider",
            sync=path,
        )
        legend = instance.require_client().capabilities.semantic_tokens_legend()
        return result, legend, instance.document_text(path) or ""

    result, legend, content = await ctx.run(path, operation)
    lines = split_lines(content)

    tokens: list[SemanticTokenInfo] = []
    data = result.data if result is not None else []
    line = 0
    character = 0
    # Relative encoding: deltaLine, deltaStart, length, tokenType, tokenModifiers
    for i in range(0, len(data) - len(data) % 5, 5):
        delta_line, delta_start, length, token_type, modifier_bits = data[i : i + 5]
        if delta_line:
            line += delta_line
            character = delta_start
        else:
            character += delta_start

        type_name = str(token_type)
        modifiers: list[str] = []
        if legend is not None:
            if token_type < len(legend.tokenTypes):
                type_name = legend.tokenTypes[token_type]
            modifiers = [
                name for bit, name in enumerate(legend.tokenModifiers) if modifier_bits & (1 << bit)
            ]

        text = ""
        if line < len(lines):
            source = lines[line]
            text = source[utf16_to_index(source, character) : utf16_to_index(source, character + length)]

        tokens.append(
            SemanticTokenInfo(
                line=line + 1,
                character=character,
                length=length,
                token_type=type_name,
                modifiers=modifiers,
                text=text,
            )
        )

    return SemanticTokensResult(path=ctx.relative_path(path), tokens=tokens)


def _overlaps(a: Range, b: Range) -> bool:
    return (a.start.line, a.start.character) <= (b.end.line, b.end.character) and (
        b.start.line,
        b.start.character,
    ) <= (a.end.line, a.end.character)


async def handle_get_code_actions(
    ctx: HandlerContext, params: GetCodeActionsParams
) -> CodeActionsResult:
    path = ctx.existing_file(params.file_path)
    uri = path_to_uri(path)

    async def operation(instance):
        doc = await instance.ensure_document_open(path)
        range_ = params.range
        if range_ is None:
            lines = split_lines(doc.content)
            range_ = Range(
                start=Position(line=0, character=0),
                end=Position(line=len(lines) - 1, character=utf16_length(lines[-1])),
            )
        diagnostics = [
            d for d in ctx.diagnostics.buffered(uri) or [] if _overlaps(d.range, range_)
        ]
        result = await ctx.send(
            instance,
            "textDocument/codeAction",
            CodeActionParams(
                textDocument=TextDocumentIdentifier(uri=uri),
                range=range_,
                context=CodeActionContext(diagnostics=diagnostics),
            ),
            tool="get_code_actions",
            capability="codeActionProvider",
        )
        return range_, result

    range_, result = await ctx.run(path, operation)

    actions: list[CodeActionInfo] = []
    for action in result or []:
        if isinstance(action, CodeAction):
            actions.append(
                CodeActionInfo(
                    title=action.title,
                    kind=action.kind,
                    is_preferred=bool(action.isPreferred),
                    has_edit=action.edit is not None,
                    command=action.command.command if action.command else None,
                )
            )
        else:
            actions.append(CodeActionInfo(title=action.title, command=action.command))

    return CodeActionsResult(path=ctx.relative_path(path), range=range_info(range_), actions=actions)
