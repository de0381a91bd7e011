from pathlib import Path
from urllib.parse import quote, unquote, urlparse


def path_to_uri(path: str | Path) -> str:
    path = Path(path).resolve()
    return "file://" + quote(str(path), safe="/:")


def uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        raise ValueError(f"Not a file URI: {uri}")
    return Path(unquote(parsed.path))


def to_path(path_or_uri: str, root: Path) -> Path:
    """Accept a file URI, an absolute path or a path relative to ``root``."""
    if path_or_uri.startswith("file://"):
        return uri_to_path(path_or_uri)
    path = Path(path_or_uri).expanduser()
    if not path.is_absolute():
        path = root / path
    return path.resolve()


def relative_display(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)
