import os
import pytest
from command_center.local.errors import OutOfBounds
from command_center.local.sandbox import PathGuard, resolve


@pytest.fixture
def root(tmp_path):
    root = tmp_path / "a" / "b"
    root.mkdir(parents=True)
    return root


def test_descendant_is_accepted(root):
    assert resolve(str(root / "c"), root) == root.resolve() / "c"


def test_root_itself_is_accepted(root):
    assert resolve(str(root), root) == root.resolve()


def test_sibling_with_common_prefix_is_rejected(root):
    with pytest.raises(OutOfBounds):
        resolve(str(root.parent / "bfoo"), root)


def test_parent_traversal_is_rejected(root):
    with pytest.raises(OutOfBounds):
        resolve(str(root / ".." / ".." / "etc"), root)


def test_traversal_that_comes_back_inside_is_accepted(root):
    assert resolve(str(root / "x" / ".." / "c"), root) == root.resolve() / "c"


@pytest.mark.parametrize("candidate", ["", "   ", None, 42])
def test_empty_or_non_path_input_is_rejected(root, candidate):
    with pytest.raises(OutOfBounds):
        resolve(candidate, root)


def test_nul_byte_is_rejected(root):
    with pytest.raises(OutOfBounds):
        resolve("c\x00d", root)


def test_relative_path_is_taken_from_root(root):
    assert resolve("notes/today.md", root) == root.resolve() / "notes" / "today.md"


def test_relative_escape_is_rejected(root):
    with pytest.raises(OutOfBounds):
        resolve("../../outside.txt", root)


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks not available")
def test_symlink_pointing_outside_is_rejected(root, tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (root / "link").symlink_to(outside, target_is_directory=True)
    with pytest.raises(OutOfBounds):
        resolve("link/secret.txt", root)


def test_guard_contains(root):
    guard = PathGuard(root)
    assert guard.contains("c")
    assert not guard.contains("/etc/passwd")
