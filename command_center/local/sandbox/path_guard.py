import logging
from pathlib import Path
from typing import Union
from command_center.local.errors import OutOfBounds

log = logging.getLogger(__name__)

PathLike = Union[str, Path]


def resolve(candidate: PathLike, root: PathLike) -> Path:
    """
    Resolves a candidate path and verifies that it stays inside root.

    Relative candidates are taken relative to root. Both paths are normalized
    ('..', '.', symlinks) before they are compared segment by segment, so
    '/a/bfoo' is never accepted for the root '/a/b'.

    :param candidate: The user supplied path.
    :param root: The directory the path must stay within.
    :return: The absolute, normalized path (the root itself or a descendant).
    :raises OutOfBounds: If the path is empty, malformed or escapes root.
    """
    if not isinstance(candidate, (str, Path)) or not str(candidate).strip():
        raise OutOfBounds("Empty path")
    if "\x00" in str(candidate) or "\x00" in str(root):
        raise OutOfBounds("Path contains a NUL byte")

    root_path = Path(root).expanduser().resolve()
    candidate_path = Path(candidate).expanduser()
    if not candidate_path.is_absolute():
        candidate_path = root_path / candidate_path

    try:
        resolved = candidate_path.resolve()
    except (OSError, RuntimeError) as e:
        # RuntimeError is raised for symlink loops on older interpreters.
        raise OutOfBounds(f"Cannot resolve path '{candidate}': {e}") from e

    if resolved != root_path and root_path not in resolved.parents:
        log.warning(f"Path confinement violation: '{candidate}' resolves outside '{root_path}'")
        raise OutOfBounds(f"Path '{candidate}' is outside of the allowed root")
    return resolved


class PathGuard:
    """Binds a sandbox root so that callers only pass the candidate path."""

    def __init__(self, root: PathLike) -> None:
        self.root = Path(root).expanduser().resolve()

    def resolve(self, candidate: PathLike) -> Path:
        return resolve(candidate, self.root)

    def contains(self, candidate: PathLike) -> bool:
        try:
            self.resolve(candidate)
        except OutOfBounds:
            return False
        return True
