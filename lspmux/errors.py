"""Errors surfaced to tool callers.

Every error a tool call can end with derives from ``LspmuxError``. The
``kind`` is the stable name shown in tool results; ``retryable`` tells the
caller whether issuing the same call again can succeed without intervention.
"""

from typing import Any


class LspmuxError(Exception):
    kind: str = "Error"
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": str(self), "retryable": self.retryable}


class UnsupportedFileType(LspmuxError):
    kind = "UnsupportedFileType"
    extension: str

    def __init__(self, extension: str):
        self.extension = extension
        shown = f".{extension}" if extension else "(no extension)"
        super().__init__(f"No language server is configured for {shown} files")


class ServerUnavailable(LspmuxError):
    kind = "ServerUnavailable"


class LanguageServerNotFound(ServerUnavailable):
    server_name: str
    install_cmd: str | None

    def __init__(self, server_name: str, extensions: list[str], install_cmd: str | None = None):
        self.server_name = server_name
        self.install_cmd = install_cmd
        files = ", ".join(f".{ext}" for ext in extensions)
        msg = f"Language server '{server_name}' for {files} files not found"
        if install_cmd:
            msg += f". Install with: {install_cmd}"
        super().__init__(msg)


class LanguageServerStartupError(ServerUnavailable):
    server_name: str
    original_error: BaseException
    server_log: str | None
    log_path: str | None

    def __init__(
        self,
        server_name: str,
        original_error: BaseException,
        server_log: str | None = None,
        log_path: str | None = None,
    ):
        self.server_name = server_name
        self.original_error = original_error
        self.server_log = server_log
        self.log_path = log_path

        lines = [f"Language server '{server_name}' failed to start: {original_error}"]
        if server_log and server_log.strip():
            lines.append("")
            lines.append("Server log (last 20 lines):")
            for line in server_log.strip().splitlines()[-20:]:
                lines.append(f"  {line}")
        if log_path:
            lines.append("")
            lines.append(f"Full server log: {log_path}")
        super().__init__("\n".join(lines))


class ServerRestarted(LspmuxError):
    kind = "ServerRestarted"
    retryable = True
    crashed: bool

    def __init__(self, message: str, crashed: bool = False):
        self.crashed = crashed
        super().__init__(message)


class RequestTimeout(LspmuxError):
    kind = "Timeout"
    retryable = True
    method: str
    timeout: float

    def __init__(self, method: str, timeout: float):
        self.method = method
        self.timeout = timeout
        super().__init__(f"Request {method} timed out after {timeout:g}s")


class SymbolNotFound(LspmuxError):
    kind = "SymbolNotFound"


class AmbiguousSymbol(LspmuxError):
    kind = "AmbiguousSymbol"
    candidates: list[dict[str, Any]]

    def __init__(self, name: str, candidates: list[dict[str, Any]]):
        self.candidates = candidates
        listed = "\n".join(
            f"  {c['name']} ({c['kind']}) at line {c['line']}, character {c['character']}"
            for c in candidates
        )
        super().__init__(
            f"Symbol '{name}' is ambiguous ({len(candidates)} matches):\n{listed}\n"
            "Use a position-addressed tool to pick one."
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["candidates"] = self.candidates
        return data


class EditConflict(LspmuxError):
    kind = "EditConflict"


class ValidationFailed(LspmuxError):
    kind = "ValidationFailed"
    problems: list[str]

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__(
            "Workspace edit rejected, nothing was written:\n"
            + "\n".join(f"  {p}" for p in problems)
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["problems"] = self.problems
        return data


class UnderlyingProtocolError(LspmuxError):
    kind = "UnderlyingProtocolError"
    code: int
    message: str
    data: object | None

    def __init__(self, code: int, message: str, data: object | None = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"LSP Error {code}: {message}")

    def is_method_not_found(self) -> bool:
        return (
            self.code == -32601
            or "not found" in self.message.lower()
            or "not yet implemented" in self.message.lower()
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["code"] = self.code
        return data


class MethodNotSupported(UnderlyingProtocolError):
    method: str
    server_name: str

    def __init__(self, method: str, server_name: str):
        self.method = method
        self.server_name = server_name
        super().__init__(-32601, f"{method} is not supported by {server_name}")


class InvalidArguments(LspmuxError):
    kind = "InvalidArguments"
