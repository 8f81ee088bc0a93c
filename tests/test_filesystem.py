"""Tests for the sandboxed workspace file provider."""

from __future__ import annotations

import pytest

from planview.tools.filesystem import (
    REQUIREMENT_FILES,
    TASK_FILES,
    PathEscapeError,
    iter_files,
    locate_plan_document,
    read_text,
    resolve_safe,
    scan_workspace,
)


@pytest.fixture
def workspace(tmp_path):
    """A small project tree with noise directories that must be skipped."""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.tsx").write_text("export const App = () => null;")
    (tmp_path / "src" / "nested").mkdir()
    (tmp_path / "src" / "nested" / "deep.py").write_text("x = 1")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "lib.js").write_text("")
    (tmp_path / ".git").mkdir()
    (tmp_path / "__pycache__").mkdir()
    (tmp_path / ".env").write_text("SECRET=1")
    (tmp_path / "server.js").write_text("const express = require('express');\napp.listen(3000);")
    (tmp_path / "README.md").write_text("# Shop")
    return tmp_path


# ---------------------------------------------------------------------------
# Sandbox
# ---------------------------------------------------------------------------

class TestResolveSafe:
    def test_normal_path(self, workspace):
        assert resolve_safe(workspace, "README.md") == workspace / "README.md"

    def test_path_escape_blocked(self, workspace):
        with pytest.raises(PathEscapeError):
            resolve_safe(workspace, "../../etc/passwd")

    def test_absolute_path_escape(self, workspace):
        with pytest.raises(PathEscapeError):
            resolve_safe(workspace, "/etc/passwd")

    def test_prefix_bypass_escape_blocked(self, workspace):
        sibling = workspace.parent / f"{workspace.name}2"
        sibling.mkdir()
        (sibling / "secret.txt").write_text("secret")
        with pytest.raises(PathEscapeError):
            resolve_safe(workspace, f"../{sibling.name}/secret.txt")

    def test_missing_root(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            resolve_safe(tmp_path / "nope", "a.txt")


class TestReadText:
    def test_reads_utf8(self, workspace):
        assert read_text(workspace, "README.md") == "# Shop"

    def test_strips_utf8_bom(self, workspace):
        (workspace / "bom.md").write_bytes(b"\xef\xbb\xbf## R1. A")
        assert read_text(workspace, "bom.md") == "## R1. A"

    def test_utf16_with_bom(self, workspace):
        (workspace / "wide.md").write_bytes("### ✅ Done".encode("utf-16"))
        assert read_text(workspace, "wide.md") == "### ✅ Done"

    def test_directory_is_not_a_file(self, workspace):
        with pytest.raises(FileNotFoundError):
            read_text(workspace, "src")


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class TestScanWorkspace:
    def test_skips_ignored_and_hidden(self, workspace):
        names = [e.name for e in scan_workspace(workspace)]
        assert names == ["src", "README.md", "server.js"]

    def test_depth_limits_children(self, workspace):
        src = scan_workspace(workspace, depth=1)[0]
        assert [c.name for c in src.children] == ["nested", "app.tsx"]
        nested = src.children[0]
        assert nested.is_dir and nested.children == []

        deeper = scan_workspace(workspace, depth=2)[0].children[0]
        assert [c.path for c in deeper.children] == ["src/nested/deep.py"]

    def test_depth_zero_lists_top_level_only(self, workspace):
        assert scan_workspace(workspace, depth=0)[0].children == []

    def test_categories_and_descriptions(self, workspace):
        entries = {e.name: e for e in scan_workspace(workspace)}
        # .js is not in the extension table; content identifies express
        assert entries["server.js"].category == "backend"
        assert entries["README.md"].category == "docs"
        assert entries["README.md"].description == "Project documentation"
        assert entries["src"].children[1].category == "frontend"

    def test_iter_files(self, workspace):
        paths = [e.path for e in iter_files(scan_workspace(workspace, depth=2))]
        assert paths == ["src/nested/deep.py", "src/app.tsx", "README.md", "server.js"]

    def test_missing_root(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            scan_workspace(tmp_path / "nope")


# ---------------------------------------------------------------------------
# Plan documents
# ---------------------------------------------------------------------------

class TestLocatePlanDocument:
    def test_task_document(self, workspace):
        (workspace / "Plan").mkdir()
        (workspace / "Plan" / "task.md").write_text("### ✅ A")
        result = locate_plan_document(workspace, TASK_FILES)
        assert result.found
        assert result.path == "Plan/task.md"
        assert result.content == "### ✅ A"

    def test_re_plan_preferred_over_simple(self, workspace):
        (workspace / "Plan").mkdir()
        (workspace / "Plan" / "re-plan-simple.md").write_text("simple")
        (workspace / "Plan" / "re-plan.md").write_text("full")
        result = locate_plan_document(workspace, REQUIREMENT_FILES)
        assert result.content == "full"

    def test_falls_back_to_simple(self, workspace):
        (workspace / "Plan").mkdir()
        (workspace / "Plan" / "re-plan-simple.md").write_text("simple")
        result = locate_plan_document(workspace, REQUIREMENT_FILES)
        assert result.path == "Plan/re-plan-simple.md"
        assert result.tried[:3] == ["Plan/re-plan.md", "plan/re-plan.md", "PLAN/re-plan.md"]

    def test_custom_plan_dirs(self, workspace):
        (workspace / "docs").mkdir()
        (workspace / "docs" / "task.md").write_text("x")
        assert locate_plan_document(workspace, TASK_FILES, ["docs"]).path == "docs/task.md"

    def test_not_found_is_a_result(self, workspace):
        result = locate_plan_document(workspace, REQUIREMENT_FILES)
        assert result.found is False
        assert result.path is None
        assert result.content == ""
        assert len(result.tried) == 6

    def test_plan_dir_linked_outside_workspace_is_not_found(self, workspace, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        (outside / "task.md").write_text("### ✅ Leaked")
        (workspace / "Plan").symlink_to(outside, target_is_directory=True)
        result = locate_plan_document(workspace, TASK_FILES)
        assert result.found is False
        assert result.content == ""
        assert "Plan/task.md" in result.tried

    def test_escaping_candidate_does_not_hide_later_ones(self, workspace, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        (outside / "task.md").write_text("### ✅ Leaked")
        (workspace / "Plan").symlink_to(outside, target_is_directory=True)
        (workspace / "plan").mkdir()
        (workspace / "plan" / "task.md").write_text("### ✅ Local")
        result = locate_plan_document(workspace, TASK_FILES)
        assert result.path == "plan/task.md"
        assert result.content == "### ✅ Local"
