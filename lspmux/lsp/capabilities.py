from typing import Any


def get_client_capabilities() -> dict[str, Any]:
    return {
        "general": {
            "positionEncodings": ["utf-16"],
        },
        "workspace": {
            "workspaceFolders": True,
            "configuration": True,
            "applyEdit": True,
            "symbol": {"dynamicRegistration": False},
            "workspaceEdit": {
                "documentChanges": True,
                "resourceOperations": ["create", "rename", "delete"],
            },
            "didChangeWatchedFiles": {"dynamicRegistration": False},
            "fileOperations": {
                "willCreate": True,
                "didCreate": True,
                "willRename": True,
                "didRename": True,
                "willDelete": True,
                "didDelete": True,
            },
        },
        "textDocument": {
            "synchronization": {"didSave": False},
            "documentSymbol": {"hierarchicalDocumentSymbolSupport": True},
            "definition": {"linkSupport": True},
            "hover": {"contentFormat": ["markdown", "plaintext"]},
            "completion": {
                "completionItem": {"snippetSupport": False, "documentationFormat": ["plaintext"]},
            },
            "signatureHelp": {
                "signatureInformation": {"parameterInformation": {"labelOffsetSupport": True}},
            },
            "rename": {"prepareSupport": True},
            "publishDiagnostics": {"relatedInformation": False, "versionSupport": True},
            "diagnostic": {"dynamicRegistration": False},
            "codeAction": {
                "codeActionLiteralSupport": {
                    "codeActionKind": {
                        "valueSet": [
                            "",
                            "quickfix",
                            "refactor",
                            "refactor.extract",
                            "refactor.inline",
                            "refactor.rewrite",
                            "source",
                            "source.organizeImports",
                        ]
                    }
                },
            },
            "formatting": {"dynamicRegistration": False},
            "callHierarchy": {"dynamicRegistration": False},
            "typeHierarchy": {"dynamicRegistration": False},
            "inlayHint": {"dynamicRegistration": False},
            "semanticTokens": {
                "requests": {"full": True},
                "tokenTypes": [],
                "tokenModifiers": [],
                "formats": ["relative"],
            },
            "foldingRange": {"lineFoldingOnly": False},
            "documentLink": {"tooltipSupport": True},
            "selectionRange": {"dynamicRegistration": False},
        },
    }
