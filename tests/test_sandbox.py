"""Tests for PathSandbox confinement."""
import os

import pytest

from filevue_backend.errors import InvalidInput, NotFound, OutsideRoot, OutsideShare
from filevue_backend.sandbox import PathSandbox, is_safe_basename


class TestLexicalConfinement:
    """Plain traversal never leaves the root."""

    @pytest.mark.parametrize(
        "path",
        ["..", "../secret", "docs/../../secret", "docs/nested/../../../secret", "./../root2"],
    )
    def test_traversal_rejected(self, sandbox, path):
        with pytest.raises(OutsideRoot):
            sandbox.resolve(path)

    def test_absolute_path_outside_rejected(self, sandbox, tmp_path):
        with pytest.raises(OutsideRoot):
            sandbox.resolve(str(tmp_path / "secret"))

    def test_absolute_path_inside_allowed(self, sandbox, root):
        assert sandbox.resolve(str(root / "notes.txt")) == root / "notes.txt"

    def test_sibling_with_common_prefix_is_outside(self, tmp_path, root):
        """/root2 must not count as inside /root."""
        (tmp_path / "root2").mkdir()
        with pytest.raises(OutsideRoot):
            PathSandbox(root).resolve(str(tmp_path / "root2"))

    def test_inner_dotdot_that_stays_inside(self, sandbox, root):
        assert sandbox.resolve("docs/nested/../readme.txt") == root / "docs" / "readme.txt"

    @pytest.mark.parametrize("path", [None, "", "."])
    def test_empty_means_root(self, sandbox, root, path):
        assert sandbox.resolve(path) == root.resolve()

    def test_nul_byte_rejected(self, sandbox):
        with pytest.raises(InvalidInput):
            sandbox.resolve("notes.txt\x00.png")

    def test_non_string_rejected(self, sandbox):
        with pytest.raises(InvalidInput):
            sandbox.resolve(42)

    def test_resolution_is_idempotent(self, sandbox):
        first = sandbox.resolve("docs/readme.txt")
        assert sandbox.resolve(sandbox.relative(first)) == first


class TestSymlinks:
    def test_symlink_inside_root_allowed(self, sandbox, root):
        os.symlink(root / "docs", root / "docs-link")
        assert sandbox.resolve("docs-link/readme.txt") == root / "docs" / "readme.txt"

    def test_symlink_escape_rejected(self, sandbox, root, tmp_path):
        os.symlink(tmp_path / "secret", root / "evil")
        with pytest.raises(OutsideRoot):
            sandbox.resolve("evil")

    def test_retargeted_symlink_fails_on_next_resolution(self, sandbox, root, tmp_path):
        """A link that was safe earlier is re-checked, not cached."""
        link = root / "moving"
        os.symlink(root / "notes.txt", link)
        assert sandbox.resolve("moving") == root / "notes.txt"

        link.unlink()
        os.symlink(tmp_path / "secret", link)
        with pytest.raises(OutsideRoot):
            sandbox.resolve("moving")

    def test_directory_symlink_escape_rejected_for_children(self, sandbox, root, tmp_path):
        outside = tmp_path / "outside-dir"
        outside.mkdir()
        os.symlink(outside, root / "portal")
        with pytest.raises(OutsideRoot):
            sandbox.resolve("portal/new-file.txt")

    def test_dangling_symlink_pointing_outside_rejected(self, sandbox, root, tmp_path):
        os.symlink(tmp_path / "does-not-exist", root / "dangling")
        with pytest.raises(OutsideRoot):
            sandbox.resolve("dangling")

    def test_symlink_loop_rejected(self, sandbox, root):
        os.symlink(root / "loop-b", root / "loop-a")
        os.symlink(root / "loop-a", root / "loop-b")
        with pytest.raises((InvalidInput, NotFound)):
            sandbox.resolve("loop-a")


class TestMissingTargets:
    def test_missing_leaf_resolves_through_parent(self, sandbox, root):
        assert sandbox.resolve("docs/new.txt") == root / "docs" / "new.txt"

    def test_missing_parent_is_not_found(self, sandbox):
        with pytest.raises(NotFound):
            sandbox.resolve("nope/new.txt")

    def test_file_used_as_directory_is_not_found(self, sandbox):
        with pytest.raises(NotFound):
            sandbox.resolve("notes.txt/child")

    def test_missing_root_is_not_found(self, tmp_path):
        sandbox = PathSandbox(tmp_path / "gone")
        with pytest.raises(NotFound):
            sandbox.resolve(".")


class TestResolveEntry:
    def test_returns_link_itself(self, sandbox, root):
        os.symlink(root / "notes.txt", root / "alias")
        assert sandbox.resolve_entry("alias") == root / "alias"

    def test_missing_entry(self, sandbox):
        with pytest.raises(NotFound):
            sandbox.resolve_entry("docs/ghost.txt")

    def test_traversal_rejected(self, sandbox):
        with pytest.raises(OutsideRoot):
            sandbox.resolve_entry("../secret")


class TestShareScopedSandbox:
    def test_raises_outside_share(self, root):
        share_sandbox = PathSandbox(root / "docs", error=OutsideShare)
        with pytest.raises(OutsideShare) as excinfo:
            share_sandbox.resolve("../notes.txt")
        assert excinfo.value.detail == "Cannot access paths outside shared directory."

    def test_relative_paths_are_share_relative(self, root):
        share_sandbox = PathSandbox(root / "docs", error=OutsideShare)
        target = share_sandbox.resolve("nested/deep.md")
        assert share_sandbox.relative(target) == "nested/deep.md"
        assert share_sandbox.relative(share_sandbox.root) == "."


@pytest.mark.parametrize(
    "name,ok",
    [
        ("file.txt", True),
        (".hidden", True),
        ("", False),
        (".", False),
        ("..", False),
        ("a/b", False),
        ("a\\b", False),
        ("bad\x00name", False),
    ],
)
def test_is_safe_basename(name, ok):
    assert is_safe_basename(name) is ok
