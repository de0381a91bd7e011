import re
from pathlib import Path

LANGUAGE_IDS = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascriptreact",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "typescriptreact",
    ".rs": "rust",
    ".go": "go",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
    ".hpp": "cpp",
    ".hxx": "cpp",
    ".java": "java",
    ".rb": "ruby",
    ".php": "php",
    ".cs": "csharp",
    ".swift": "swift",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".scala": "scala",
    ".lua": "lua",
    ".sh": "shellscript",
    ".bash": "shellscript",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".html": "html",
    ".css": "css",
    ".md": "markdown",
    ".zig": "zig",
    ".dart": "dart",
    ".vue": "vue",
    ".svelte": "svelte",
}

# The protocol only recognizes these three line terminators.
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def get_language_id(path: str | Path) -> str:
    path = Path(path)
    return LANGUAGE_IDS.get(path.suffix.lower(), "plaintext")


def read_file_content(path: str | Path) -> str:
    # Bytes first so line endings survive untouched
    return Path(path).read_bytes().decode("utf-8", errors="replace")


def write_file_content(path: str | Path, content: str) -> None:
    Path(path).write_bytes(content.encode("utf-8"))


def split_lines(content: str) -> list[str]:
    """Split into protocol lines. A trailing newline yields a final empty line."""
    return _LINE_BREAK.split(content)


def get_line_at(content: str, line: int) -> str:
    lines = split_lines(content)
    if 0 <= line < len(lines):
        return lines[line]
    return ""


def get_lines_around(content: str, line: int, context: int) -> tuple[list[str], int, int]:
    lines = split_lines(content)
    start = max(0, line - context)
    end = min(len(lines), line + context + 1)
    return lines[start:end], start, end


def utf16_length(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def utf16_to_index(text: str, character: int) -> int:
    """Convert a UTF-16 code unit column into a Python string index."""
    units = 0
    for index, ch in enumerate(text):
        if units >= character:
            return index
        units += 2 if ord(ch) > 0xFFFF else 1
    return len(text)


def index_to_utf16(text: str, index: int) -> int:
    return utf16_length(text[:index])


def _line_starts(content: str) -> list[int]:
    starts = [0]
    for match in _LINE_BREAK.finditer(content):
        starts.append(match.end())
    return starts


def position_in_bounds(content: str, line: int, character: int) -> bool:
    lines = split_lines(content)
    if line < 0 or character < 0 or line >= len(lines):
        return False
    return character <= utf16_length(lines[line])


def position_to_offset(content: str, line: int, character: int) -> int:
    """Map a protocol position to a string offset, clamping to the document."""
    if line < 0:
        return 0
    starts = _line_starts(content)
    if line >= len(starts):
        return len(content)
    lines = split_lines(content)
    return starts[line] + utf16_to_index(lines[line], character)


def offset_to_position(content: str, offset: int) -> tuple[int, int]:
    starts = _line_starts(content)
    lines = split_lines(content)
    line = 0
    for i, start in enumerate(starts):
        if start > offset:
            break
        line = i
    column = min(offset - starts[line], len(lines[line]))
    return line, index_to_utf16(lines[line], column)


def find_name_in_line(text: str, name: str) -> int | None:
    """UTF-16 column of ``name`` as a whole word on the line, if present."""
    pattern = re.compile(r"(?<![\w$])" + re.escape(name) + r"(?![\w$])")
    match = pattern.search(text)
    if match is None:
        index = text.find(name)
        if index < 0:
            return None
        return index_to_utf16(text, index)
    return index_to_utf16(text, match.start())
