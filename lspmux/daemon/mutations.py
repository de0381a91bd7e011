"""Preview, validate and apply workspace edits.

An ``EditPlan`` is built from a protocol ``WorkspaceEdit`` (or from a file
operation) together with the content each touched file had when the edit
was computed. Previewing never touches the file system. Applying first
checks that nothing moved underneath the plan, then writes the steps in
order; a write failure leaves the plan ``partial`` with the files that were
already written.
"""

import difflib
import hashlib
import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from ..errors import EditConflict, ValidationFailed
from ..lsp.types import (
    CreateFile,
    DeleteFile,
    Range,
    RenameFile,
    TextDocumentEdit,
    TextEdit,
    WorkspaceEdit,
)
from ..utils.text import (
    position_in_bounds,
    position_to_offset,
    read_file_content,
    split_lines,
    utf16_length,
    utf16_to_index,
    write_file_content,
)
from ..utils.uri import relative_display, uri_to_path

logger = logging.getLogger(__name__)


@dataclass
class TextChange:
    path: Path
    range: Range
    new_text: str
    version: int | None = None


@dataclass
class FileChange:
    kind: Literal["create", "rename", "delete"]
    path: Path
    new_path: Path | None = None
    content: str = ""
    overwrite: bool = False
    ignore_if_exists: bool = False
    ignore_if_not_exists: bool = False
    recursive: bool = False

    def describe(self, root: Path) -> str:
        if self.kind == "rename":
            assert self.new_path is not None
            return f"rename {relative_display(self.path, root)} -> {relative_display(self.new_path, root)}"
        return f"{self.kind} {relative_display(self.path, root)}"


Step = TextChange | FileChange


class PlanState(str, Enum):
    PREVIEW = "preview"
    APPLIED = "applied"
    PARTIAL = "partial"


@dataclass
class FileBaseline:
    path: Path
    content: str | None
    digest: str | None
    version: int | None = None


@dataclass
class EditPlan:
    steps: list[Step]
    baselines: dict[Path, FileBaseline] = field(default_factory=dict)
    state: PlanState = PlanState.PREVIEW
    changed: list[Path] = field(default_factory=list)
    failed_path: Path | None = None
    failure: str | None = None
    not_attempted: list[Step] = field(default_factory=list)

    @property
    def text_changes(self) -> list[TextChange]:
        return [s for s in self.steps if isinstance(s, TextChange)]

    @property
    def file_changes(self) -> list[FileChange]:
        return [s for s in self.steps if isinstance(s, FileChange)]

    @property
    def touched_paths(self) -> list[Path]:
        paths: list[Path] = []
        for step in self.steps:
            paths.append(step.path)
            if isinstance(step, FileChange) and step.new_path is not None:
                paths.append(step.new_path)
        return list(dict.fromkeys(paths))

    def is_empty(self) -> bool:
        return not self.steps


TextSource = Callable[[Path], str | None]
VersionSource = Callable[[Path], int | None]


def _digest(content: str | None) -> str | None:
    if content is None:
        return None
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _disk_content(path: Path) -> str | None:
    if not path.is_file():
        return None
    return read_file_content(path)


def build_plan(
    steps: list[Step],
    document_text: TextSource | None = None,
    document_version: VersionSource | None = None,
) -> EditPlan:
    """Record a baseline for every file the steps touch.

    The baseline is the text the server was given when the document is open
    there, otherwise what is on disk.
    """
    plan = EditPlan(steps=steps)
    for path in plan.touched_paths:
        content = document_text(path) if document_text else None
        if content is None:
            content = _disk_content(path)
        version = document_version(path) if document_version else None
        plan.baselines[path] = FileBaseline(path, content, _digest(content), version)
    return plan


def steps_from_workspace_edit(edit: WorkspaceEdit) -> list[Step]:
    steps: list[Step] = []

    if edit.documentChanges:
        for change in edit.documentChanges:
            if isinstance(change, TextDocumentEdit):
                path = uri_to_path(change.textDocument.uri)
                for text_edit in change.edits:
                    steps.append(
                        TextChange(path, text_edit.range, text_edit.newText, change.textDocument.version)
                    )
            elif isinstance(change, CreateFile):
                options = change.options
                steps.append(
                    FileChange(
                        "create",
                        uri_to_path(change.uri),
                        overwrite=bool(options and options.overwrite),
                        ignore_if_exists=bool(options and options.ignoreIfExists),
                    )
                )
            elif isinstance(change, RenameFile):
                options = change.options
                steps.append(
                    FileChange(
                        "rename",
                        uri_to_path(change.oldUri),
                        new_path=uri_to_path(change.newUri),
                        overwrite=bool(options and options.overwrite),
                        ignore_if_exists=bool(options and options.ignoreIfExists),
                    )
                )
            elif isinstance(change, DeleteFile):
                options = change.options
                steps.append(
                    FileChange(
                        "delete",
                        uri_to_path(change.uri),
                        recursive=bool(options and options.recursive),
                        ignore_if_not_exists=bool(options and options.ignoreIfNotExists),
                    )
                )
    elif edit.changes:
        for uri, text_edits in edit.changes.items():
            path = uri_to_path(uri)
            for text_edit in text_edits:
                steps.append(TextChange(path, text_edit.range, text_edit.newText))

    return steps


def plan_from_workspace_edit(
    edit: WorkspaceEdit,
    document_text: TextSource | None = None,
    document_version: VersionSource | None = None,
) -> EditPlan:
    return build_plan(steps_from_workspace_edit(edit), document_text, document_version)


def text_changes_from_edits(path: Path, edits: list[TextEdit]) -> list[Step]:
    return [TextChange(path, e.range, e.newText) for e in edits]


def apply_text_changes(content: str, changes: list[TextChange]) -> str:
    """Apply edits to one document, bottom-up on UTF-16 positions."""
    located = []
    for index, change in enumerate(changes):
        start = position_to_offset(content, change.range.start.line, change.range.start.character)
        end = position_to_offset(content, change.range.end.line, change.range.end.character)
        if end < start:
            start, end = end, start
        located.append((start, end, index, change.new_text))

    # Same-position inserts keep their listed order
    located.sort(key=lambda item: (item[0], item[1], item[2]), reverse=True)

    result = content
    for start, end, _, new_text in located:
        result = result[:start] + new_text + result[end:]
    return result


def _batches(steps: list[Step]) -> list[list[TextChange] | FileChange]:
    """Group consecutive text changes to the same file."""
    batches: list[list[TextChange] | FileChange] = []
    for step in steps:
        if isinstance(step, TextChange):
            last = batches[-1] if batches else None
            if isinstance(last, list) and last[0].path == step.path:
                last.append(step)
                continue
            batches.append([step])
        else:
            batches.append(step)
    return batches


class _VirtualFiles:
    """File contents as the plan's steps would leave them."""

    def __init__(self, initial: Callable[[Path], str | None]):
        self._initial = initial
        self._files: dict[Path, str | None] = {}

    def get(self, path: Path) -> str | None:
        if path not in self._files:
            self._files[path] = self._initial(path)
        return self._files[path]

    def set(self, path: Path, content: str | None) -> None:
        self._files[path] = content

    def exists(self, path: Path) -> bool:
        if path in self._files:
            return self._files[path] is not None
        if path.is_dir():
            return True
        return self.get(path) is not None


def _simulate(
    plan: EditPlan,
    initial: Callable[[Path], str | None],
    on_text: Callable[[Path, str, list[TextChange]], None] | None = None,
    on_file: Callable[[FileChange, _VirtualFiles], None] | None = None,
) -> _VirtualFiles:
    files = _VirtualFiles(initial)
    for batch in _batches(plan.steps):
        if isinstance(batch, list):
            path = batch[0].path
            content = files.get(path) or ""
            if on_text:
                on_text(path, content, batch)
            files.set(path, apply_text_changes(content, batch))
        else:
            if on_file:
                on_file(batch, files)
            if batch.kind == "create":
                if batch.overwrite or not files.exists(batch.path):
                    files.set(batch.path, batch.content)
            elif batch.kind == "rename":
                assert batch.new_path is not None
                if batch.overwrite or not files.exists(batch.new_path):
                    files.set(batch.new_path, files.get(batch.path))
                    files.set(batch.path, None)
            elif batch.kind == "delete":
                files.set(batch.path, None)
    return files


def _baseline_content(plan: EditPlan) -> Callable[[Path], str | None]:
    def initial(path: Path) -> str | None:
        baseline = plan.baselines.get(path)
        if baseline is not None:
            return baseline.content
        return _disk_content(path)

    return initial


@dataclass
class ChangeLocation:
    path: str
    line: int
    character: int
    before: str
    after: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "line": self.line,
            "character": self.character,
            "before": self.before,
            "after": self.after,
        }


@dataclass
class PlanPreview:
    locations: list[ChangeLocation]
    file_operations: list[str]
    diff: str
    files: list[str]
    notes: list[str] = field(default_factory=list)


def render_preview(plan: EditPlan, root: Path) -> PlanPreview:
    locations: list[ChangeLocation] = []
    file_operations: list[str] = []
    notes: list[str] = []
    originals: dict[Path, str | None] = {}
    initial = _baseline_content(plan)

    def on_text(path: Path, content: str, changes: list[TextChange]) -> None:
        lines = split_lines(content)
        for change in changes:
            start, end = change.range.start, change.range.end
            before = lines[start.line] if start.line < len(lines) else ""
            end_line = lines[end.line] if end.line < len(lines) else ""
            prefix = before[: utf16_to_index(before, start.character)]
            suffix = end_line[utf16_to_index(end_line, end.character) :]
            after = split_lines(prefix + change.new_text + suffix)[0]
            for position in (start, end) if start != end else (start,):
                if position.line < len(lines):
                    length = utf16_length(lines[position.line])
                    if position.character > length:
                        notes.append(
                            f"{relative_display(path, root)}:{position.line + 1}: column "
                            f"{position.character} is past the end of the line, clamped to {length}"
                        )
            locations.append(
                ChangeLocation(
                    relative_display(path, root), start.line + 1, start.character, before, after
                )
            )

    def on_file(change: FileChange, files: _VirtualFiles) -> None:
        file_operations.append(change.describe(root))

    for path in plan.touched_paths:
        originals[path] = initial(path)

    final = _simulate(plan, initial, on_text=on_text, on_file=on_file)

    diff_parts: list[str] = []
    files: list[str] = []
    for path in plan.touched_paths:
        before = originals[path]
        after = final.get(path)
        if before == after:
            continue
        rel = relative_display(path, root)
        files.append(rel)
        fromfile = f"a/{rel}" if before is not None else "/dev/null"
        tofile = f"b/{rel}" if after is not None else "/dev/null"
        diff = difflib.unified_diff(
            (before or "").splitlines(keepends=True),
            (after or "").splitlines(keepends=True),
            fromfile=fromfile,
            tofile=tofile,
        )
        text = "".join(line if line.endswith("\n") else line + "\n" for line in diff)
        if text:
            diff_parts.append(text)

    return PlanPreview(locations, file_operations, "".join(diff_parts), files, notes)


def validate_bounds(plan: EditPlan, root: Path) -> None:
    """Reject the plan when any text edit points outside its document."""
    problems: list[str] = []

    def on_text(path: Path, content: str, changes: list[TextChange]) -> None:
        lines = split_lines(content)
        rel = relative_display(path, root)
        for change in changes:
            start, end = change.range.start, change.range.end
            for label, pos in (("start", start), ("end", end)):
                if not position_in_bounds(content, pos.line, pos.character):
                    if pos.line < 0 or pos.line >= len(lines):
                        problems.append(
                            f"{rel}: {label} line {pos.line} is outside the file ({len(lines)} lines)"
                        )
                    else:
                        problems.append(
                            f"{rel}: {label} character {pos.character} is past the end of line "
                            f"{pos.line} (length {len(lines[pos.line])})"
                        )
            if (end.line, end.character) < (start.line, start.character):
                problems.append(f"{rel}: range end {end.line}:{end.character} is before its start")

    _simulate(plan, lambda p: _disk_content(p), on_text=on_text)

    if problems:
        raise ValidationFailed(problems)


def check_stale(plan: EditPlan, root: Path, current_version: VersionSource | None = None) -> None:
    """Raise ``EditConflict`` if the files moved on since the plan was made."""
    for path, baseline in plan.baselines.items():
        current = _disk_content(path)
        if _digest(current) != baseline.digest:
            raise EditConflict(
                f"{relative_display(path, root)} changed since the edit was computed; "
                "request the edit again"
            )

    if current_version is not None:
        for change in plan.text_changes:
            if change.version is None:
                continue
            version = current_version(change.path)
            if version is not None and version != change.version:
                raise EditConflict(
                    f"{relative_display(change.path, root)} is at version {version}, "
                    f"the edit was made for version {change.version}"
                )

    def on_text(path: Path, content: str, changes: list[TextChange]) -> None:
        line_count = len(split_lines(content))
        for change in changes:
            line = max(change.range.start.line, change.range.end.line)
            if line >= line_count:
                raise EditConflict(
                    f"{relative_display(path, root)}: edit at line {line + 1} "
                    f"no longer fits the file ({line_count} lines)"
                )

    def on_file(change: FileChange, files: _VirtualFiles) -> None:
        rel = relative_display(change.path, root)
        if change.kind == "create":
            if files.exists(change.path) and not (change.overwrite or change.ignore_if_exists):
                raise EditConflict(f"{rel} already exists")
        elif change.kind == "rename":
            assert change.new_path is not None
            if not files.exists(change.path):
                raise EditConflict(f"{rel} does not exist")
            if files.exists(change.new_path) and not (change.overwrite or change.ignore_if_exists):
                raise EditConflict(f"{relative_display(change.new_path, root)} already exists")
        elif change.kind == "delete":
            if not files.exists(change.path) and not change.ignore_if_not_exists:
                raise EditConflict(f"{rel} does not exist")

    _simulate(plan, _baseline_content(plan), on_text=on_text, on_file=on_file)


def _apply_file_change(change: FileChange) -> list[Path]:
    if change.kind == "create":
        if change.path.exists() and not change.overwrite:
            return []
        change.path.parent.mkdir(parents=True, exist_ok=True)
        write_file_content(change.path, change.content)
        return [change.path]

    if change.kind == "rename":
        assert change.new_path is not None
        if change.new_path.exists() and not change.overwrite:
            return []
        change.new_path.parent.mkdir(parents=True, exist_ok=True)
        change.path.replace(change.new_path)
        return [change.path, change.new_path]

    if change.path.is_dir():
        if change.recursive:
            shutil.rmtree(change.path)
        else:
            change.path.rmdir()
    else:
        change.path.unlink(missing_ok=change.ignore_if_not_exists)
    return [change.path]


def apply_plan(plan: EditPlan) -> EditPlan:
    """Write every step in order. Already written files are kept on failure."""
    batches = _batches(plan.steps)

    for index, batch in enumerate(batches):
        if isinstance(batch, list):
            path = batch[0].path
        else:
            path = batch.path
        try:
            if isinstance(batch, list):
                content = _disk_content(path) or ""
                write_file_content(path, apply_text_changes(content, batch))
                written = [path]
            else:
                written = _apply_file_change(batch)
        except OSError as e:
            logger.error(f"Failed to write {path}: {e}")
            plan.state = PlanState.PARTIAL
            plan.failed_path = path
            plan.failure = str(e)
            for rest in batches[index + 1 :]:
                if isinstance(rest, list):
                    plan.not_attempted.extend(rest)
                else:
                    plan.not_attempted.append(rest)
            return plan

        for written_path in written:
            if written_path not in plan.changed:
                plan.changed.append(written_path)

    plan.state = PlanState.APPLIED
    logger.info(f"Applied {len(plan.steps)} edit step(s) to {len(plan.changed)} file(s)")
    return plan
