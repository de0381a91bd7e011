import asyncio
import json
from typing import Any


class LSPProtocolError(Exception):
    pass


def encode_message(obj: dict[str, Any]) -> bytes:
    content = json.dumps(obj).encode("utf-8")
    header = f"Content-Length: {len(content)}\r\n\r\n".encode("ascii")
    return header + content


async def read_message(reader: asyncio.StreamReader) -> dict[str, Any]:
    headers: dict[str, str] = {}

    while True:
        line = await reader.readline()
        if not line:
            raise LSPProtocolError("Connection closed")

        line_str = line.decode("ascii").strip()
        if not line_str:
            break

        if ":" in line_str:
            key, value = line_str.split(":", 1)
            headers[key.strip().lower()] = value.strip()

    if "content-length" not in headers:
        raise LSPProtocolError("Missing Content-Length header")

    try:
        content_length = int(headers["content-length"])
    except ValueError:
        raise LSPProtocolError(f"Invalid Content-Length: {headers['content-length']}")

    try:
        content = await reader.readexactly(content_length)
    except asyncio.IncompleteReadError:
        raise LSPProtocolError("Connection closed mid-message")

    try:
        return json.loads(content.decode("utf-8"))
    except json.JSONDecodeError as e:
        raise LSPProtocolError(f"Malformed message body: {e}")
