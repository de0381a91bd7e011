"""Tests for the MCP server interface."""

import pytest
from mcp.server.fastmcp.exceptions import ToolError

from lspmux.daemon.mcp_server import MCPToolServer
from lspmux.daemon.server import TOOLS


@pytest.fixture
def mcp_server(tools):
    return MCPToolServer(tools)


class TestMCPServer:
    @pytest.mark.asyncio
    async def test_registers_every_tool(self, mcp_server):
        listed = await mcp_server.mcp.list_tools()
        assert {tool.name for tool in listed} == set(TOOLS)

    @pytest.mark.asyncio
    async def test_tool_descriptions(self, mcp_server):
        listed = {tool.name: tool for tool in await mcp_server.mcp.list_tools()}
        definition = listed["find_definition"]
        assert definition.description.startswith("Find where a symbol is defined")
        assert set(definition.inputSchema["required"]) == {"file_path", "symbol_name"}

    @pytest.mark.asyncio
    async def test_call_returns_text(self, mcp_server):
        text = await mcp_server._call(
            "find_definition",
            {"file_path": "models.py", "symbol_name": "Dog", "symbol_kind": None},
        )
        assert "Results for Class 'Dog' declared at models.py line 14" in text

    @pytest.mark.asyncio
    async def test_errors_become_tool_errors(self, mcp_server):
        with pytest.raises(ToolError, match=r"Error \[SymbolNotFound\]"):
            await mcp_server._call("find_definition", {"file_path": "models.py", "symbol_name": "Cat"})
