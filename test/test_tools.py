"""End-to-end tool calls against the scripted language server."""

import pytest

from lspmux.daemon.server import TOOLS


def rng(start_line, start_char, end_line, end_char):
    return {
        "start": {"line": start_line, "character": start_char},
        "end": {"line": end_line, "character": end_char},
    }


class TestCatalog:
    def test_tool_names(self):
        assert len(TOOLS) == 28
        assert {
            "find_definition",
            "find_references",
            "rename_symbol",
            "rename_symbol_strict",
            "get_diagnostics",
            "get_document_symbols",
            "get_code_actions",
            "format_document",
            "search_workspace_symbols",
            "get_folding_ranges",
            "get_document_links",
            "get_hover",
            "get_completions",
            "get_signature_help",
            "get_inlay_hints",
            "get_semantic_tokens",
            "prepare_call_hierarchy",
            "prepare_type_hierarchy",
            "get_selection_range",
            "get_call_hierarchy_incoming_calls",
            "get_call_hierarchy_outgoing_calls",
            "get_type_hierarchy_supertypes",
            "get_type_hierarchy_subtypes",
            "create_file",
            "rename_file",
            "delete_file",
            "apply_workspace_edit",
            "restart_server",
        } == set(TOOLS)


class TestArgumentErrors:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, tools):
        result = await tools.call_tool("find_everything", {})
        assert result.is_error
        assert result.text == "Error [InvalidArguments]: Unknown tool: find_everything"

    @pytest.mark.asyncio
    async def test_missing_argument(self, tools):
        result = await tools.call_tool("find_definition", {"file_path": "models.py"})
        assert result.is_error
        assert result.data["kind"] == "InvalidArguments"
        assert "symbol_name" in result.text
        assert result.data["errors"][0]["loc"] == ("symbol_name",)

    @pytest.mark.asyncio
    async def test_line_is_one_based(self, tools):
        result = await tools.call_tool(
            "get_hover", {"file_path": "models.py", "line": 0, "character": 0}
        )
        assert result.is_error
        assert "line" in result.text

    @pytest.mark.asyncio
    async def test_missing_file(self, tools):
        result = await tools.call_tool("get_document_symbols", {"file_path": "nope.py"})
        assert result.text == "Error [InvalidArguments]: File not found: nope.py"

    @pytest.mark.asyncio
    async def test_unsupported_file_type(self, tools):
        result = await tools.call_tool(
            "get_hover", {"file_path": "notes.txt", "line": 1, "character": 0}
        )
        assert result.is_error
        assert result.text.startswith("Error [UnsupportedFileType]")
        assert ".txt" in result.text


class TestNavigation:
    @pytest.mark.asyncio
    async def test_find_definition(self, tools):
        result = await tools.call_tool(
            "find_definition", {"file_path": "models.py", "symbol_name": "Dog"}
        )

        assert not result.is_error
        assert result.data["symbol"]["kind"] == "Class"
        [location] = result.data["locations"]
        assert (location["path"], location["line"], location["character"]) == ("models.py", 14, 6)
        assert location["context"] == ["", "class Dog(Animal):", "    def speak(self):"]
        assert "Results for Class 'Dog' declared at models.py line 14" in result.text

    @pytest.mark.asyncio
    async def test_find_definition_across_files(self, tools):
        result = await tools.call_tool(
            "find_definition", {"file_path": "service.py", "symbol_name": "make_dog"}
        )
        assert result.data["locations"][0]["path"] == "service.py"
        assert result.data["locations"][0]["line"] == 4

    @pytest.mark.asyncio
    async def test_symbol_not_found(self, tools):
        result = await tools.call_tool(
            "find_definition", {"file_path": "models.py", "symbol_name": "Cat"}
        )
        assert result.is_error
        assert result.text.startswith("Error [SymbolNotFound]: Symbol 'Cat' not found in models.py")
        assert result.data["retryable"] is False

    @pytest.mark.asyncio
    async def test_strict_ambiguity(self, tools):
        result = await tools.call_tool(
            "find_definition",
            {"file_path": "models.py", "symbol_name": "speak", "strict": True},
        )
        assert result.is_error
        assert result.data["kind"] == "AmbiguousSymbol"
        assert len(result.data["candidates"]) == 2

    @pytest.mark.asyncio
    async def test_find_references(self, tools):
        result = await tools.call_tool(
            "find_references", {"file_path": "models.py", "symbol_name": "describe"}
        )

        locations = [(loc["path"], loc["line"]) for loc in result.data["locations"]]
        assert locations == [
            ("models.py", 11),
            ("models.py", 24),
            ("models.py", 29),
            ("service.py", 1),
            ("service.py", 10),
        ]
        assert result.text.startswith("References for 'describe' (Function, models.py line 24)")

    @pytest.mark.asyncio
    async def test_find_references_without_declaration(self, tools):
        result = await tools.call_tool(
            "find_references",
            {"file_path": "models.py", "symbol_name": "describe", "include_declaration": False},
        )
        lines = [(loc["path"], loc["line"]) for loc in result.data["locations"]]
        assert ("models.py", 24) not in lines
        assert len(lines) == 4

    @pytest.mark.asyncio
    async def test_document_symbols(self, tools):
        result = await tools.call_tool("get_document_symbols", {"file_path": "models.py"})

        symbols = result.data["symbols"]
        assert [s["name"] for s in symbols][:4] == ["DEFAULT_NAME", "Animal", "__init__", "speak"]
        assert symbols[1]["depth"] == 0
        assert symbols[2]["depth"] == 1
        assert symbols[2]["container"] == "Animal"
        assert result.text.startswith("Symbols in models.py:")

    @pytest.mark.asyncio
    async def test_workspace_symbols(self, tools):
        result = await tools.call_tool(
            "search_workspace_symbols", {"query": "Dog", "extensions": ["py"]}
        )

        found = {(s["name"], s["path"], s["line"]) for s in result.data["symbols"]}
        assert ("Dog", "models.py", 14) in found
        assert ("make_dog", "service.py", 4) in found

    @pytest.mark.asyncio
    async def test_workspace_symbols_reports_unsupported_extension(self, tools):
        result = await tools.call_tool(
            "search_workspace_symbols", {"query": "Dog", "extensions": ["py", "txt"]}
        )
        assert not result.is_error
        assert result.data["symbols"]
        assert result.data["errors"][0].startswith(".txt:")

    @pytest.mark.asyncio
    async def test_workspace_symbols_without_servers(self, tools):
        result = await tools.call_tool("search_workspace_symbols", {"query": "Dog"})
        assert result.data["symbols"] == []
        assert result.data["errors"] == []


class TestIntelligence:
    @pytest.mark.asyncio
    async def test_hover(self, tools):
        result = await tools.call_tool(
            "get_hover", {"file_path": "models.py", "line": 14, "character": 7}
        )
        assert "(class) Dog" in result.data["contents"]
        assert result.data["range"] == {
            "line": 14,
            "character": 6,
            "end_line": 14,
            "end_character": 9,
        }

    @pytest.mark.asyncio
    async def test_hover_on_blank_line(self, tools):
        result = await tools.call_tool(
            "get_hover", {"file_path": "models.py", "line": 2, "character": 0}
        )
        assert not result.is_error
        assert result.text == "No hover information at models.py:2:0"

    @pytest.mark.asyncio
    async def test_completions(self, tools):
        result = await tools.call_tool(
            "get_completions",
            {"file_path": "models.py", "line": 2, "character": 0, "limit": 3},
        )
        assert result.data["total"] == 12
        assert [item["label"] for item in result.data["items"]] == ["__init__", "Animal", "bark"]
        assert result.data["items"][0]["kind"] == "Variable"
        assert "12 completion(s) at models.py:2:0 (showing 3)" in result.text

    @pytest.mark.asyncio
    async def test_signature_help(self, tools):
        result = await tools.call_tool(
            "get_signature_help", {"file_path": "service.py", "line": 10, "character": 20}
        )
        [signature] = result.data["signatures"]
        assert signature["label"] == "describe(name)"
        assert signature["parameters"] == ["name"]
        assert signature["active_parameter"] == 0

    @pytest.mark.asyncio
    async def test_inlay_hints(self, tools):
        result = await tools.call_tool(
            "get_inlay_hints", {"file_path": "broken.py", "start_line": 1, "end_line": 6}
        )
        assert result.data["hints"] == [
            {"line": 6, "character": 5, "label": ": int", "kind": "type"}
        ]

    @pytest.mark.asyncio
    async def test_semantic_tokens(self, tools):
        result = await tools.call_tool("get_semantic_tokens", {"file_path": "models.py"})
        tokens = result.data["tokens"]

        assert tokens[0] == {
            "line": 3,
            "character": 0,
            "length": 12,
            "token_type": "variable",
            "modifiers": ["declaration", "readonly"],
            "text": "DEFAULT_NAME",
        }
        dog = next(t for t in tokens if t["text"] == "Dog")
        assert (dog["line"], dog["character"], dog["token_type"]) == (14, 6, "class")

    @pytest.mark.asyncio
    async def test_code_actions(self, tools):
        await tools.call_tool("get_diagnostics", {"file_path": "broken.py"})
        result = await tools.call_tool("get_code_actions", {"file_path": "broken.py"})

        titles = [action["title"] for action in result.data["actions"]]
        assert "Fix: undefined name 'undefined_name'" in titles
        assert "Organize imports" in titles
        linter = next(a for a in result.data["actions"] if a["title"] == "Run linter")
        assert linter["command"] == "fake.lint"
        assert not linter["has_edit"]

    @pytest.mark.asyncio
    async def test_code_actions_for_range(self, tools):
        await tools.call_tool("get_diagnostics", {"file_path": "broken.py"})
        result = await tools.call_tool(
            "get_code_actions", {"file_path": "broken.py", "range": rng(5, 0, 5, 12)}
        )
        titles = [action["title"] for action in result.data["actions"]]
        assert not any(title.startswith("Fix:") for title in titles)
        assert result.data["range"]["line"] == 6


class TestDocumentStructure:
    @pytest.mark.asyncio
    async def test_folding_ranges(self, tools):
        result = await tools.call_tool("get_folding_ranges", {"file_path": "models.py"})
        ranges = [(r["start_line"], r["end_line"]) for r in result.data["ranges"]]
        assert (6, 11) in ranges
        assert (14, 16) in ranges
        assert ranges == sorted(ranges)

    @pytest.mark.asyncio
    async def test_document_links(self, tools, workspace):
        (workspace / "links.py").write_text("# docs: https://example.com/guide\nVALUE = 1\n")
        result = await tools.call_tool("get_document_links", {"file_path": "links.py"})
        [link] = result.data["links"]
        assert link["target"] == "https://example.com/guide"
        assert link["range"]["line"] == 1

    @pytest.mark.asyncio
    async def test_selection_range(self, tools):
        result = await tools.call_tool(
            "get_selection_range",
            {"file_path": "models.py", "positions": [{"line": 14, "character": 7}]},
        )
        [selection] = result.data["selections"]
        chain = [(r["line"], r["character"], r["end_line"], r["end_character"]) for r in selection["ranges"]]
        assert chain[0] == (14, 6, 14, 9)
        assert chain[1] == (14, 0, 14, 18)
        assert chain[-1][0] == 1


class TestHierarchies:
    @pytest.mark.asyncio
    async def test_call_hierarchy_replay(self, tools):
        prepared = await tools.call_tool(
            "prepare_call_hierarchy", {"file_path": "models.py", "line": 24, "character": 4}
        )
        [node] = prepared.data["items"]
        assert node["name"] == "describe"
        assert "item: {" in prepared.text

        incoming = await tools.call_tool(
            "get_call_hierarchy_incoming_calls", {"item": node["item"]}
        )
        callers = {(c["node"]["name"], c["node"]["path"]) for c in incoming.data["calls"]}
        assert callers == {("speak", "models.py"), ("bark", "models.py"), ("greet", "service.py")}
        assert "3 incoming call(s) to 'describe'" in incoming.text

    @pytest.mark.asyncio
    async def test_outgoing_calls(self, tools):
        prepared = await tools.call_tool(
            "prepare_call_hierarchy", {"file_path": "models.py", "line": 28, "character": 4}
        )
        item = prepared.data["items"][0]["item"]

        outgoing = await tools.call_tool("get_call_hierarchy_outgoing_calls", {"item": item})
        [call] = outgoing.data["calls"]
        assert call["node"]["name"] == "describe"
        assert call["from_ranges"][0]["line"] == 29

    @pytest.mark.asyncio
    async def test_no_call_hierarchy_item(self, tools):
        result = await tools.call_tool(
            "prepare_call_hierarchy", {"file_path": "models.py", "line": 14, "character": 7}
        )
        assert result.data["items"] == []
        assert result.text == "No call hierarchy item at models.py:14:7"

    @pytest.mark.asyncio
    async def test_type_hierarchy(self, tools):
        dog = await tools.call_tool(
            "prepare_type_hierarchy", {"file_path": "models.py", "line": 14, "character": 6}
        )
        supertypes = await tools.call_tool(
            "get_type_hierarchy_supertypes", {"item": dog.data["items"][0]["item"]}
        )
        assert [n["name"] for n in supertypes.data["items"]] == ["Animal"]

        animal = await tools.call_tool(
            "prepare_type_hierarchy", {"file_path": "models.py", "line": 6, "character": 6}
        )
        subtypes = await tools.call_tool(
            "get_type_hierarchy_subtypes", {"item": animal.data["items"][0]["item"]}
        )
        assert [n["name"] for n in subtypes.data["items"]] == ["Dog"]
        assert "1 subtype(s) of 'Animal'" in subtypes.text

    @pytest.mark.asyncio
    async def test_malformed_item(self, tools):
        result = await tools.call_tool("get_type_hierarchy_subtypes", {"item": {"name": "Dog"}})
        assert result.is_error
        assert result.data["kind"] == "InvalidArguments"


class TestRename:
    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, tools, workspace):
        before = {p.name: p.read_bytes() for p in workspace.glob("*.py")}

        result = await tools.call_tool(
            "rename_symbol",
            {"file_path": "models.py", "symbol_name": "Dog", "new_name": "Hound", "dry_run": True},
        )

        assert not result.is_error
        assert result.data["state"] == "preview"
        assert result.data["files_changed"] == ["models.py", "service.py"]
        assert result.text.startswith("[DRY RUN] Would rename 'Dog' to 'Hound'")
        assert "+class Hound(Animal):" in result.data["diff"]
        assert {p.name: p.read_bytes() for p in workspace.glob("*.py")} == before

    @pytest.mark.asyncio
    async def test_rename_applied(self, tools, workspace):
        result = await tools.call_tool(
            "rename_symbol", {"file_path": "models.py", "symbol_name": "Dog", "new_name": "Hound"}
        )

        assert result.data["state"] == "applied"
        assert sorted(result.data["files_changed"]) == ["models.py", "service.py"]
        assert "class Hound(Animal):" in (workspace / "models.py").read_text()
        service = (workspace / "service.py").read_text()
        assert "from models import Hound, describe" in service
        assert "dog = Hound(name)" in service
        assert "Dog" not in service

        follow_up = await tools.call_tool(
            "find_definition", {"file_path": "models.py", "symbol_name": "Hound"}
        )
        assert follow_up.data["locations"][0]["line"] == 14

    @pytest.mark.asyncio
    async def test_rename_with_versioned_document_changes(self, tool_server_factory, workspace):
        tools = tool_server_factory("--document-changes")
        result = await tools.call_tool(
            "rename_symbol",
            {"file_path": "models.py", "symbol_name": "bark", "new_name": "woof"},
        )
        assert result.data["state"] == "applied"
        assert "return woof(self.name)" in (workspace / "models.py").read_text()

    @pytest.mark.asyncio
    async def test_rename_without_prepare(self, tool_server_factory, workspace):
        tools = tool_server_factory("--no-prepare-rename")
        result = await tools.call_tool(
            "rename_symbol",
            {"file_path": "service.py", "symbol_name": "greet", "new_name": "welcome"},
        )
        assert not result.is_error
        assert "def welcome(name):" in (workspace / "service.py").read_text()

    @pytest.mark.asyncio
    async def test_rename_strict(self, tools, workspace):
        result = await tools.call_tool(
            "rename_symbol_strict",
            {"file_path": "models.py", "line": 24, "character": 4, "new_name": "explain"},
        )
        assert result.data["state"] == "applied"
        assert "return explain(name)" in (workspace / "service.py").read_text()

    @pytest.mark.asyncio
    async def test_rename_strict_rejected_position(self, tools, workspace):
        before = (workspace / "models.py").read_text()
        result = await tools.call_tool(
            "rename_symbol_strict",
            {"file_path": "models.py", "line": 14, "character": 1, "new_name": "struct"},
        )
        assert result.is_error
        assert result.text.startswith("Error [UnderlyingProtocolError]")
        assert (workspace / "models.py").read_text() == before


class TestFormatting:
    @pytest.mark.asyncio
    async def test_dry_run(self, tools, workspace):
        before = (workspace / "broken.py").read_bytes()
        result = await tools.call_tool("format_document", {"file_path": "broken.py", "dry_run": True})

        assert result.data["changes"] == [
            {
                "path": "broken.py",
                "line": 6,
                "character": 0,
                "before": "count = 3   ",
                "after": "count = 3",
            }
        ]
        assert (workspace / "broken.py").read_bytes() == before

    @pytest.mark.asyncio
    async def test_applied(self, tools, workspace):
        result = await tools.call_tool("format_document", {"file_path": "broken.py"})
        assert result.text.startswith("Successfully applied format broken.py")
        assert (workspace / "broken.py").read_text().endswith("count = 3\n")

    @pytest.mark.asyncio
    async def test_already_formatted(self, tools):
        result = await tools.call_tool("format_document", {"file_path": "service.py"})
        assert not result.is_error
        assert result.data["files_changed"] == []
        assert "No changes" in result.text


class TestApplyWorkspaceEdit:
    @pytest.mark.asyncio
    async def test_apply(self, tools, workspace):
        result = await tools.call_tool(
            "apply_workspace_edit",
            {"changes": {"service.py": [{"range": rng(3, 4, 3, 12), "newText": "build_dog"}]}},
        )
        assert result.data["state"] == "applied"
        assert "def build_dog(name):" in (workspace / "service.py").read_text()

    @pytest.mark.asyncio
    async def test_dry_run(self, tools, workspace):
        before = (workspace / "service.py").read_text()
        result = await tools.call_tool(
            "apply_workspace_edit",
            {
                "changes": {"service.py": [{"range": rng(3, 4, 3, 12), "newText": "build_dog"}]},
                "dry_run": True,
            },
        )
        assert result.data["changes"][0]["after"] == "def build_dog(name):"
        assert (workspace / "service.py").read_text() == before

    @pytest.mark.asyncio
    async def test_validation_rejects_out_of_range(self, tools, workspace):
        before = (workspace / "service.py").read_text()
        result = await tools.call_tool(
            "apply_workspace_edit",
            {
                "changes": {"service.py": [{"range": rng(3, 4, 3, 80), "newText": "x"}]},
                "validate_before_apply": True,
            },
        )
        assert result.is_error
        assert result.data["kind"] == "ValidationFailed"
        assert "past the end of line 3" in result.data["problems"][0]
        assert (workspace / "service.py").read_text() == before

    @pytest.mark.asyncio
    async def test_line_outside_file_conflicts(self, tools, workspace):
        result = await tools.call_tool(
            "apply_workspace_edit",
            {"changes": {"service.py": [{"range": rng(90, 0, 90, 1), "newText": "x"}]}},
        )
        assert result.is_error
        assert result.data["kind"] == "EditConflict"

    @pytest.mark.asyncio
    async def test_range_ending_outside_file_conflicts(self, tools, workspace):
        before = (workspace / "models.py").read_text()
        result = await tools.call_tool(
            "apply_workspace_edit",
            {"changes": {"models.py": [{"range": rng(0, 0, 999, 0), "newText": "x = 1\n"}]}},
        )
        assert result.is_error
        assert result.data["kind"] == "EditConflict"
        assert (workspace / "models.py").read_text() == before

    @pytest.mark.asyncio
    async def test_clamped_column_is_reported(self, tools, workspace):
        result = await tools.call_tool(
            "apply_workspace_edit",
            {
                "changes": {"service.py": [{"range": rng(3, 4, 3, 80), "newText": "build_dog():"}]},
                "dry_run": True,
            },
        )
        assert not result.is_error
        assert result.data["changes"][0]["after"] == "def build_dog():"
        assert len(result.data["notes"]) == 1
        assert result.data["notes"][0].startswith("service.py:4: column 80 is past the end")
        assert "Notes:" in result.text


class TestFileOperations:
    @pytest.mark.asyncio
    async def test_create_file(self, tools, workspace):
        result = await tools.call_tool(
            "create_file", {"file_path": "pkg/extra.py", "content": "VALUE = 1\n"}
        )
        assert result.data["state"] == "applied"
        assert (workspace / "pkg" / "extra.py").read_text() == "VALUE = 1\n"

    @pytest.mark.asyncio
    async def test_create_file_dry_run(self, tools, workspace):
        result = await tools.call_tool(
            "create_file", {"file_path": "extra.py", "content": "VALUE = 1\n", "dry_run": True}
        )
        assert result.data["file_operations"] == ["create extra.py"]
        assert not (workspace / "extra.py").exists()

    @pytest.mark.asyncio
    async def test_create_existing_file(self, tools):
        result = await tools.call_tool("create_file", {"file_path": "models.py"})
        assert result.is_error
        assert result.data["kind"] == "EditConflict"

    @pytest.mark.asyncio
    async def test_create_file_without_server(self, tools, workspace):
        result = await tools.call_tool("create_file", {"file_path": "README.md", "content": "# x\n"})
        assert not result.is_error
        assert (workspace / "README.md").read_text() == "# x\n"

    @pytest.mark.asyncio
    async def test_rename_file_updates_imports(self, tool_server_factory, workspace):
        tools = tool_server_factory("--file-ops")
        result = await tools.call_tool(
            "rename_file", {"old_path": "models.py", "new_path": "animals.py"}
        )

        assert result.data["state"] == "applied"
        assert not (workspace / "models.py").exists()
        assert (workspace / "animals.py").exists()
        assert (workspace / "service.py").read_text().startswith("from animals import Dog")
        assert "rename models.py -> animals.py" in result.data["file_operations"]

    @pytest.mark.asyncio
    async def test_rename_file_without_file_operations(self, tools, workspace):
        result = await tools.call_tool(
            "rename_file", {"old_path": "models.py", "new_path": "animals.py"}
        )
        assert result.data["state"] == "applied"
        assert (workspace / "animals.py").exists()
        assert (workspace / "service.py").read_text().startswith("from models import Dog")

    @pytest.mark.asyncio
    async def test_rename_file_onto_existing(self, tools, workspace):
        result = await tools.call_tool(
            "rename_file", {"old_path": "models.py", "new_path": "service.py"}
        )
        assert result.data["kind"] == "EditConflict"
        assert (workspace / "models.py").exists()

    @pytest.mark.asyncio
    async def test_delete_file(self, tools, workspace):
        dry = await tools.call_tool("delete_file", {"file_path": "broken.py", "dry_run": True})
        assert dry.text.startswith("[DRY RUN] Would delete broken.py")
        assert (workspace / "broken.py").exists()

        result = await tools.call_tool("delete_file", {"file_path": "broken.py"})
        assert result.data["state"] == "applied"
        assert not (workspace / "broken.py").exists()

    @pytest.mark.asyncio
    async def test_delete_missing_file(self, tools):
        result = await tools.call_tool("delete_file", {"file_path": "gone.py"})
        assert result.data["kind"] == "EditConflict"


class TestServerControl:
    @pytest.mark.asyncio
    async def test_restart(self, tools):
        await tools.call_tool("get_document_symbols", {"file_path": "models.py"})
        result = await tools.call_tool("restart_server", {"extensions": ["py"]})

        assert result.data["restarted"] == ["fakels"]
        [status] = result.data["servers"]
        assert status["state"] == "Ready"
        assert status["generation"] == 2
        assert result.text.startswith("Restarted 1 server group(s): fakels")

    @pytest.mark.asyncio
    async def test_restart_nothing_running(self, tools):
        result = await tools.call_tool("restart_server", {})
        assert result.data["restarted"] == []
        assert result.text == "No running server matched, nothing restarted"

    @pytest.mark.asyncio
    async def test_crash_is_retried_once(self, tool_server_factory, temp_dir):
        marker = temp_dir / "crashed-once"
        tools = tool_server_factory("--crash-once", str(marker))

        result = await tools.call_tool(
            "get_hover", {"file_path": "models.py", "line": 14, "character": 7}
        )

        assert not result.is_error
        assert "(class) Dog" in result.data["contents"]
        assert marker.exists()
        [status] = tools.supervisor.describe()
        assert status["generation"] == 2
