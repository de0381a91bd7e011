import pytest

from lspmux.errors import UnsupportedFileType
from lspmux.servers import registry as registry_module
from lspmux.servers.registry import SERVERS, ServerRegistry, extension_of, normalize_extension


class TestExtensions:
    def test_normalize(self):
        assert normalize_extension(".PY") == "py"
        assert normalize_extension(" ts ") == "ts"

    def test_extension_of(self):
        assert extension_of("src/Main.RS") == "rs"
        assert extension_of("Makefile") == ""


class TestGroupForExtension:
    def test_builtin_groups(self):
        registry = ServerRegistry()
        assert registry.group_for_extension("py") == "python"
        assert registry.group_for_extension(".tsx") == "typescript"
        assert registry.group_for_file("main.go") == "go"
        assert registry.group_for_file("lib.hpp") == "c"

    def test_unknown_extension(self):
        registry = ServerRegistry()
        with pytest.raises(UnsupportedFileType) as exc_info:
            registry.group_for_file("notes.txt")
        assert exc_info.value.kind == "UnsupportedFileType"
        assert ".txt" in str(exc_info.value)

    def test_no_extension(self):
        with pytest.raises(UnsupportedFileType, match="no extension"):
            ServerRegistry().group_for_file("Makefile")

    def test_group_extensions(self):
        registry = ServerRegistry()
        assert registry.extensions("python") == frozenset({"py", "pyi"})


class TestConfiguredServers:
    def test_new_server_claims_extensions(self):
        registry = ServerRegistry(
            {"servers": [{"name": "fakels", "command": ["fakels"], "extensions": ["py"]}]}
        )
        assert registry.group_for_extension("py") == "fakels"
        assert "python" not in registry.groups
        with pytest.raises(UnsupportedFileType):
            registry.group_for_extension("pyi")

    def test_override_by_server_name_keeps_extensions(self):
        registry = ServerRegistry({"servers": [{"name": "pylsp", "command": "pylsp -v"}]})
        server = registry.select("python")
        assert server.name == "pylsp"
        assert server.command == ["pylsp", "-v"]
        assert server.extensions == ["py", "pyi"]

    def test_builtin_table_untouched(self):
        ServerRegistry({"servers": [{"name": "python", "command": ["x"], "extensions": ["py"]}]})
        assert SERVERS["python"][0].name == "basedpyright"

    def test_entry_needs_command(self):
        with pytest.raises(ValueError, match="command"):
            ServerRegistry({"servers": [{"name": "nothing"}]})

    def test_new_entry_needs_extensions(self):
        with pytest.raises(ValueError, match="extensions"):
            ServerRegistry({"servers": [{"name": "brand-new", "command": ["x"]}]})


class TestSelect:
    def test_first_installed_candidate(self, monkeypatch):
        monkeypatch.setattr(
            registry_module, "is_server_installed", lambda server: server.name == "pylsp"
        )
        assert ServerRegistry().select("python").name == "pylsp"

    def test_falls_back_to_first_candidate(self, monkeypatch):
        monkeypatch.setattr(registry_module, "is_server_installed", lambda server: False)
        assert ServerRegistry().select("python").name == "basedpyright"

    def test_all_servers(self):
        pairs = ServerRegistry().all_servers()
        assert ("python", SERVERS["python"][1]) in pairs
