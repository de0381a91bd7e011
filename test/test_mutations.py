import pytest

from lspmux.daemon.mutations import (
    FileChange,
    PlanState,
    TextChange,
    apply_plan,
    apply_text_changes,
    build_plan,
    check_stale,
    plan_from_workspace_edit,
    render_preview,
    validate_bounds,
)
from lspmux.errors import EditConflict, ValidationFailed
from lspmux.lsp.types import Position, Range, WorkspaceEdit
from lspmux.utils.uri import path_to_uri


def rng(start_line, start_char, end_line, end_char):
    return Range(
        start=Position(line=start_line, character=start_char),
        end=Position(line=end_line, character=end_char),
    )


class TestApplyTextChanges:
    def test_edits_are_applied_bottom_up(self, temp_dir):
        path = temp_dir / "a.py"
        content = "foo = 1\nprint(foo)\n"
        changes = [
            TextChange(path, rng(0, 0, 0, 3), "bar"),
            TextChange(path, rng(1, 6, 1, 9), "bar"),
        ]
        assert apply_text_changes(content, changes) == "bar = 1\nprint(bar)\n"

    def test_inserts_at_same_position_keep_order(self, temp_dir):
        path = temp_dir / "a.py"
        changes = [
            TextChange(path, rng(0, 0, 0, 0), "a"),
            TextChange(path, rng(0, 0, 0, 0), "b"),
        ]
        assert apply_text_changes("x", changes) == "abx"

    def test_utf16_columns(self, temp_dir):
        path = temp_dir / "a.py"
        content = "s = '😀'; name = 1"
        changes = [TextChange(path, rng(0, 10, 0, 14), "label")]
        assert apply_text_changes(content, changes) == "s = '😀'; label = 1"

    def test_crlf_preserved(self, temp_dir):
        path = temp_dir / "a.py"
        changes = [TextChange(path, rng(1, 0, 1, 1), "B")]
        assert apply_text_changes("a\r\nb\r\n", changes) == "a\r\nB\r\n"


class TestPlanFromWorkspaceEdit:
    def test_changes_map(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("foo\n")
        edit = WorkspaceEdit(
            changes={path_to_uri(path): [{"range": rng(0, 0, 0, 3), "newText": "bar"}]}
        )
        plan = plan_from_workspace_edit(edit)
        assert len(plan.text_changes) == 1
        assert plan.baselines[path].content == "foo\n"

    def test_document_changes_with_file_operations(self, temp_dir):
        old = temp_dir / "old.py"
        old.write_text("x = 1\n")
        new = temp_dir / "new.py"
        edit = WorkspaceEdit.model_validate(
            {
                "documentChanges": [
                    {
                        "textDocument": {"uri": path_to_uri(old), "version": 3},
                        "edits": [{"range": rng(0, 0, 0, 1).model_dump(), "newText": "y"}],
                    },
                    {"kind": "rename", "oldUri": path_to_uri(old), "newUri": path_to_uri(new)},
                ]
            }
        )
        plan = plan_from_workspace_edit(edit)
        assert plan.text_changes[0].version == 3
        assert plan.file_changes[0].kind == "rename"
        assert plan.file_changes[0].new_path == new

    def test_open_document_text_is_baseline(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("on disk\n")
        plan = build_plan(
            [TextChange(path, rng(0, 0, 0, 2), "in")], document_text=lambda p: "in memory\n"
        )
        assert plan.baselines[path].content == "in memory\n"


class TestRenderPreview:
    def test_preview_does_not_write(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("foo = 1\nprint(foo)\n")
        plan = build_plan(
            [
                TextChange(path, rng(0, 0, 0, 3), "bar"),
                TextChange(path, rng(1, 6, 1, 9), "bar"),
            ]
        )

        preview = render_preview(plan, temp_dir)

        assert path.read_text() == "foo = 1\nprint(foo)\n"
        assert preview.files == ["a.py"]
        assert [(c.line, c.before, c.after) for c in preview.locations] == [
            (1, "foo = 1", "bar = 1"),
            (2, "print(foo)", "print(bar)"),
        ]
        assert "-foo = 1" in preview.diff
        assert "+print(bar)" in preview.diff

    def test_file_operations_listed(self, temp_dir):
        plan = build_plan([FileChange("create", temp_dir / "pkg" / "new.py", content="x\n")])
        preview = render_preview(plan, temp_dir)
        assert preview.file_operations == ["create pkg/new.py"]
        assert "/dev/null" in preview.diff
        assert not (temp_dir / "pkg").exists()

    def test_clamped_column_is_noted(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("foo = 1\n")
        plan = build_plan([TextChange(path, rng(0, 4, 0, 40), "2")])

        preview = render_preview(plan, temp_dir)

        assert preview.locations[0].after == "foo 2"
        assert preview.notes == [
            "a.py:1: column 40 is past the end of the line, clamped to 7"
        ]

    def test_in_range_edit_has_no_notes(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("foo = 1\n")
        plan = build_plan([TextChange(path, rng(0, 6, 0, 7), "2")])
        assert render_preview(plan, temp_dir).notes == []


class TestValidateBounds:
    def test_line_outside_file(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("one\ntwo")
        plan = build_plan([TextChange(path, rng(5, 0, 5, 1), "x")])
        with pytest.raises(ValidationFailed) as exc_info:
            validate_bounds(plan, temp_dir)
        assert "line 5 is outside the file" in exc_info.value.problems[0]

    def test_character_past_end_of_line(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("one\ntwo")
        plan = build_plan([TextChange(path, rng(0, 1, 0, 9), "x")])
        with pytest.raises(ValidationFailed, match="past the end of line"):
            validate_bounds(plan, temp_dir)

    def test_valid_plan(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("one\ntwo")
        validate_bounds(build_plan([TextChange(path, rng(1, 0, 1, 3), "2")]), temp_dir)


class TestCheckStale:
    def test_file_changed_on_disk(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("foo\n")
        plan = build_plan([TextChange(path, rng(0, 0, 0, 3), "bar")])
        path.write_text("changed\n")
        with pytest.raises(EditConflict, match="changed since"):
            check_stale(plan, temp_dir)

    def test_version_mismatch(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("foo\n")
        plan = build_plan([TextChange(path, rng(0, 0, 0, 3), "bar", version=1)])
        with pytest.raises(EditConflict, match="version 2"):
            check_stale(plan, temp_dir, current_version=lambda p: 2)

    def test_line_no_longer_exists(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("foo")
        plan = build_plan([TextChange(path, rng(4, 0, 4, 0), "x")])
        with pytest.raises(EditConflict, match="no longer fits"):
            check_stale(plan, temp_dir)

    def test_range_end_past_last_line(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("foo = 1\nbar = 2\n")
        plan = build_plan([TextChange(path, rng(0, 0, 999, 0), "x = 1\n")])
        with pytest.raises(EditConflict, match="line 1000 no longer fits"):
            check_stale(plan, temp_dir)
        assert path.read_text() == "foo = 1\nbar = 2\n"

    def test_rename_onto_existing_file(self, temp_dir):
        (temp_dir / "a.py").write_text("a")
        (temp_dir / "b.py").write_text("b")
        plan = build_plan([FileChange("rename", temp_dir / "a.py", new_path=temp_dir / "b.py")])
        with pytest.raises(EditConflict, match="already exists"):
            check_stale(plan, temp_dir)

    def test_delete_missing_file(self, temp_dir):
        plan = build_plan([FileChange("delete", temp_dir / "gone.py")])
        with pytest.raises(EditConflict, match="does not exist"):
            check_stale(plan, temp_dir)


class TestApplyPlan:
    def test_text_and_file_steps(self, temp_dir):
        old = temp_dir / "old.py"
        old.write_text("x = 1\n")
        new = temp_dir / "sub" / "new.py"
        plan = build_plan(
            [
                TextChange(old, rng(0, 0, 0, 1), "y"),
                FileChange("rename", old, new_path=new),
            ]
        )
        check_stale(plan, temp_dir)
        apply_plan(plan)

        assert plan.state == PlanState.APPLIED
        assert not old.exists()
        assert new.read_text() == "y = 1\n"
        assert plan.changed == [old, new]

    def test_edit_to_missing_file_creates_it(self, temp_dir):
        path = temp_dir / "fresh.py"
        plan = build_plan([TextChange(path, rng(0, 0, 0, 0), "hello\n")])
        apply_plan(plan)
        assert path.read_text() == "hello\n"

    def test_failure_leaves_partial_state(self, temp_dir):
        good = temp_dir / "good.py"
        good.write_text("a\n")
        blocked = temp_dir / "blocked.py"
        blocked.mkdir()
        later = temp_dir / "later.py"
        later.write_text("c\n")
        plan = build_plan(
            [
                TextChange(good, rng(0, 0, 0, 1), "A"),
                TextChange(blocked, rng(0, 0, 0, 0), "B"),
                TextChange(later, rng(0, 0, 0, 1), "C"),
            ]
        )

        apply_plan(plan)

        assert plan.state == PlanState.PARTIAL
        assert plan.changed == [good]
        assert plan.failed_path == blocked
        assert [step.path for step in plan.not_attempted] == [later]
        assert good.read_text() == "A\n"
        assert later.read_text() == "c\n"
