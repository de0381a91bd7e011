"""MCP server that exposes the lspmux tool catalog."""

import logging
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from ..utils.config import Config, get_log_dir, load_config
from .server import ToolServer

logger = logging.getLogger(__name__)


class MCPToolServer:
    """Registers one MCP tool per catalog entry, all backed by a ToolServer."""

    def __init__(self, tools: ToolServer):
        self.tools = tools
        self._mcp = FastMCP("lspmux", json_response=True)
        self._register_tools()

    @property
    def mcp(self) -> FastMCP:
        return self._mcp

    async def _call(self, name: str, arguments: dict[str, Any]) -> str:
        args = {key: value for key, value in arguments.items() if value is not None}
        result = await self.tools.call_tool(name, args)
        if result.is_error:
            raise ToolError(result.text)
        return result.text

    def _register_tools(self) -> None:
        """Register all MCP tools."""

        @self._mcp.tool()
        async def find_definition(
            file_path: str,
            symbol_name: str,
            symbol_kind: str | None = None,
            strict: bool = False,
        ) -> str:
            """Find where a symbol is defined, looking it up by name in a file.

            Args:
                file_path: File that declares or uses the symbol (absolute or workspace-relative)
                symbol_name: Name of the symbol (e.g. 'calculateAge', 'User.save')
                symbol_kind: Only consider symbols of this kind (function, class, method, ...)
                strict: Fail with the list of candidates when the name is ambiguous
            """
            return await self._call(
                "find_definition",
                {
                    "file_path": file_path,
                    "symbol_name": symbol_name,
                    "symbol_kind": symbol_kind,
                    "strict": strict,
                },
            )

        @self._mcp.tool()
        async def find_references(
            file_path: str,
            symbol_name: str,
            symbol_kind: str | None = None,
            include_declaration: bool = True,
            strict: bool = False,
        ) -> str:
            """Find every reference to a symbol, looking it up by name in a file.

            Args:
                file_path: File that declares the symbol
                symbol_name: Name of the symbol
                symbol_kind: Only consider symbols of this kind
                include_declaration: Include the declaration itself in the results
                strict: Fail with the list of candidates when the name is ambiguous
            """
            return await self._call(
                "find_references",
                {
                    "file_path": file_path,
                    "symbol_name": symbol_name,
                    "symbol_kind": symbol_kind,
                    "include_declaration": include_declaration,
                    "strict": strict,
                },
            )

        @self._mcp.tool()
        async def rename_symbol(
            file_path: str,
            symbol_name: str,
            new_name: str,
            symbol_kind: str | None = None,
            strict: bool = False,
            dry_run: bool = False,
        ) -> str:
            """Rename a symbol across the workspace, looking it up by name in a file.

            Args:
                file_path: File that declares the symbol
                symbol_name: Current name of the symbol
                new_name: New name for the symbol
                symbol_kind: Only consider symbols of this kind
                strict: Fail with the list of candidates when the name is ambiguous
                dry_run: Show what would change without writing anything
            """
            return await self._call(
                "rename_symbol",
                {
                    "file_path": file_path,
                    "symbol_name": symbol_name,
                    "new_name": new_name,
                    "symbol_kind": symbol_kind,
                    "strict": strict,
                    "dry_run": dry_run,
                },
            )

        @self._mcp.tool()
        async def rename_symbol_strict(
            file_path: str,
            line: int,
            character: int,
            new_name: str,
            dry_run: bool = False,
        ) -> str:
            """Rename the symbol at an exact position.

            Args:
                file_path: File containing the symbol
                line: Line number (1-based)
                character: Character offset within the line (0-based)
                new_name: New name for the symbol
                dry_run: Show what would change without writing anything
            """
            return await self._call(
                "rename_symbol_strict",
                {
                    "file_path": file_path,
                    "line": line,
                    "character": character,
                    "new_name": new_name,
                    "dry_run": dry_run,
                },
            )

        @self._mcp.tool()
        async def get_diagnostics(file_path: str, severity: str | None = None) -> str:
            """Get errors, warnings and hints the language server reports for a file.

            Args:
                file_path: File to check
                severity: Minimum severity to include (error, warning, information, hint)
            """
            return await self._call(
                "get_diagnostics", {"file_path": file_path, "severity": severity}
            )

        @self._mcp.tool()
        async def get_document_symbols(file_path: str) -> str:
            """List the symbols declared in a file as an outline.

            Args:
                file_path: File to outline
            """
            return await self._call("get_document_symbols", {"file_path": file_path})

        @self._mcp.tool()
        async def get_code_actions(file_path: str, range: dict[str, Any] | None = None) -> str:
            """List quick fixes and refactorings available for a range.

            Args:
                file_path: File to inspect
                range: LSP range with 0-based start/end {line, character}; whole file when omitted
            """
            return await self._call("get_code_actions", {"file_path": file_path, "range": range})

        @self._mcp.tool()
        async def format_document(
            file_path: str,
            options: dict[str, Any] | None = None,
            dry_run: bool = False,
        ) -> str:
            """Format a file with its language server.

            Args:
                file_path: File to format
                options: Formatting options {tab_size, insert_spaces}; config defaults when omitted
                dry_run: Show the formatting changes without writing them
            """
            return await self._call(
                "format_document",
                {"file_path": file_path, "options": options, "dry_run": dry_run},
            )

        @self._mcp.tool()
        async def search_workspace_symbols(query: str, extensions: list[str] | None = None) -> str:
            """Search symbols across the workspace in every running language server.

            Args:
                query: Symbol name or fragment to search for
                extensions: Start the servers for these file extensions before searching
            """
            return await self._call(
                "search_workspace_symbols", {"query": query, "extensions": extensions}
            )

        @self._mcp.tool()
        async def get_folding_ranges(file_path: str) -> str:
            """List the foldable regions of a file.

            Args:
                file_path: File to inspect
            """
            return await self._call("get_folding_ranges", {"file_path": file_path})

        @self._mcp.tool()
        async def get_document_links(file_path: str) -> str:
            """List links (imports, URLs) the language server recognizes in a file.

            Args:
                file_path: File to inspect
            """
            return await self._call("get_document_links", {"file_path": file_path})

        @self._mcp.tool()
        async def get_hover(file_path: str, line: int, character: int) -> str:
            """Get type information and documentation for the symbol at a position.

            Args:
                file_path: File containing the symbol
                line: Line number (1-based)
                character: Character offset within the line (0-based)
            """
            return await self._call(
                "get_hover", {"file_path": file_path, "line": line, "character": character}
            )

        @self._mcp.tool()
        async def get_completions(
            file_path: str,
            line: int,
            character: int,
            trigger_character: str | None = None,
            limit: int = 50,
        ) -> str:
            """Get completion suggestions at a position.

            Args:
                file_path: File to complete in
                line: Line number (1-based)
                character: Character offset within the line (0-based)
                trigger_character: Character that triggered completion, such as '.'
                limit: Maximum number of suggestions to return
            """
            return await self._call(
                "get_completions",
                {
                    "file_path": file_path,
                    "line": line,
                    "character": character,
                    "trigger_character": trigger_character,
                    "limit": limit,
                },
            )

        @self._mcp.tool()
        async def get_signature_help(file_path: str, line: int, character: int) -> str:
            """Get the signature of the call surrounding a position.

            Args:
                file_path: File containing the call
                line: Line number (1-based)
                character: Character offset within the line (0-based)
            """
            return await self._call(
                "get_signature_help",
                {"file_path": file_path, "line": line, "character": character},
            )

        @self._mcp.tool()
        async def get_inlay_hints(
            file_path: str,
            start_line: int,
            end_line: int,
            start_character: int = 0,
            end_character: int = 0,
        ) -> str:
            """Get inferred types and parameter names for a line range.

            Args:
                file_path: File to inspect
                start_line: First line (1-based)
                end_line: Last line (1-based)
                start_character: Character offset on the first line (0-based)
                end_character: Character offset on the last line (0-based)
            """
            return await self._call(
                "get_inlay_hints",
                {
                    "file_path": file_path,
                    "start_line": start_line,
                    "start_character": start_character,
                    "end_line": end_line,
                    "end_character": end_character,
                },
            )

        @self._mcp.tool()
        async def get_semantic_tokens(file_path: str) -> str:
            """Classify every token of a file (types, functions, parameters, ...).

            Args:
                file_path: File to inspect
            """
            return await self._call("get_semantic_tokens", {"file_path": file_path})

        @self._mcp.tool()
        async def prepare_call_hierarchy(file_path: str, line: int, character: int) -> str:
            """Get the call hierarchy item at a position, to pass to the call tools.

            Args:
                file_path: File containing the function
                line: Line number (1-based)
                character: Character offset within the line (0-based)
            """
            return await self._call(
                "prepare_call_hierarchy",
                {"file_path": file_path, "line": line, "character": character},
            )

        @self._mcp.tool()
        async def prepare_type_hierarchy(file_path: str, line: int, character: int) -> str:
            """Get the type hierarchy item at a position, to pass to the type tools.

            Args:
                file_path: File containing the type
                line: Line number (1-based)
                character: Character offset within the line (0-based)
            """
            return await self._call(
                "prepare_type_hierarchy",
                {"file_path": file_path, "line": line, "character": character},
            )

        @self._mcp.tool()
        async def get_selection_range(file_path: str, positions: list[dict[str, int]]) -> str:
            """Get the nested ranges that an expanding selection would cover.

            Args:
                file_path: File to inspect
                positions: Positions as {line (1-based), character (0-based)}
            """
            return await self._call(
                "get_selection_range", {"file_path": file_path, "positions": positions}
            )

        @self._mcp.tool()
        async def get_call_hierarchy_incoming_calls(item: dict[str, Any]) -> str:
            """List the functions that call a call hierarchy item.

            Args:
                item: Item returned by prepare_call_hierarchy (name, kind, uri, range, selectionRange)
            """
            return await self._call("get_call_hierarchy_incoming_calls", {"item": item})

        @self._mcp.tool()
        async def get_call_hierarchy_outgoing_calls(item: dict[str, Any]) -> str:
            """List the functions a call hierarchy item calls.

            Args:
                item: Item returned by prepare_call_hierarchy (name, kind, uri, range, selectionRange)
            """
            return await self._call("get_call_hierarchy_outgoing_calls", {"item": item})

        @self._mcp.tool()
        async def get_type_hierarchy_supertypes(item: dict[str, Any]) -> str:
            """List the parent types of a type hierarchy item.

            Args:
                item: Item returned by prepare_type_hierarchy (name, kind, uri, range, selectionRange)
            """
            return await self._call("get_type_hierarchy_supertypes", {"item": item})

        @self._mcp.tool()
        async def get_type_hierarchy_subtypes(item: dict[str, Any]) -> str:
            """List the types derived from a type hierarchy item.

            Args:
                item: Item returned by prepare_type_hierarchy (name, kind, uri, range, selectionRange)
            """
            return await self._call("get_type_hierarchy_subtypes", {"item": item})

        @self._mcp.tool()
        async def create_file(
            file_path: str,
            content: str = "",
            overwrite: bool = False,
            dry_run: bool = False,
        ) -> str:
            """Create a file, letting the language server update related files.

            Args:
                file_path: Path of the new file
                content: Initial content
                overwrite: Replace the file if it already exists
                dry_run: Show what would happen without writing anything
            """
            return await self._call(
                "create_file",
                {
                    "file_path": file_path,
                    "content": content,
                    "overwrite": overwrite,
                    "dry_run": dry_run,
                },
            )

        @self._mcp.tool()
        async def rename_file(
            old_path: str,
            new_path: str,
            overwrite: bool = False,
            dry_run: bool = False,
        ) -> str:
            """Move or rename a file and update imports that refer to it.

            Args:
                old_path: Current path of the file
                new_path: New path of the file
                overwrite: Replace the target if it already exists
                dry_run: Show what would happen without writing anything
            """
            return await self._call(
                "rename_file",
                {
                    "old_path": old_path,
                    "new_path": new_path,
                    "overwrite": overwrite,
                    "dry_run": dry_run,
                },
            )

        @self._mcp.tool()
        async def delete_file(file_path: str, dry_run: bool = False) -> str:
            """Delete a file, letting the language server clean up references to it.

            Args:
                file_path: File to delete
                dry_run: Show what would happen without deleting anything
            """
            return await self._call("delete_file", {"file_path": file_path, "dry_run": dry_run})

        @self._mcp.tool()
        async def apply_workspace_edit(
            changes: dict[str, list[dict[str, Any]]],
            validate_before_apply: bool = False,
            dry_run: bool = False,
        ) -> str:
            """Apply text edits to one or more files.

            Args:
                changes: Map of file path or URI to LSP text edits {range, newText} (0-based)
                validate_before_apply: Reject everything if any range is outside its document
                dry_run: Show what would change without writing anything
            """
            return await self._call(
                "apply_workspace_edit",
                {
                    "changes": changes,
                    "validate_before_apply": validate_before_apply,
                    "dry_run": dry_run,
                },
            )

        @self._mcp.tool()
        async def restart_server(extensions: list[str] | None = None) -> str:
            """Restart language servers, for example after changing project configuration.

            Args:
                extensions: Restart the servers for these file extensions; all when omitted
            """
            return await self._call("restart_server", {"extensions": extensions})

    async def run_stdio(self) -> None:
        try:
            await self._mcp.run_stdio_async()
        finally:
            await self.tools.shutdown()

    async def run_http(self, host: str = "127.0.0.1", port: int = 8765) -> None:
        import uvicorn

        config = uvicorn.Config(
            self._mcp.streamable_http_app(),
            host=host,
            port=port,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        logger.info(f"MCP server on http://{host}:{port}/mcp")
        try:
            await server.serve()
        finally:
            await self.tools.shutdown()


def setup_logging(config: Config) -> None:
    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    level = str(config.get("daemon", {}).get("log_level", "info")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_dir / "daemon.log"),
        ],
    )


async def run_mcp_server(
    root: Path,
    transport: str = "stdio",
    host: str = "127.0.0.1",
    port: int = 8765,
) -> None:
    """Run the MCP server for the workspace at ``root``."""
    config = load_config(root)
    setup_logging(config)
    logger.info(f"Starting lspmux for {root} over {transport}")

    server = MCPToolServer(ToolServer(root, config))
    if transport == "http":
        await server.run_http(host=host, port=port)
    else:
        await server.run_stdio()
