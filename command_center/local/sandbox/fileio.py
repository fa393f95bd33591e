import os
import shutil
import logging
import tempfile
from pathlib import Path
from typing import Optional

log = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak"


def _read_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


# os.umask can only be read by setting it, so it is read once at import.
UMASK = _read_umask()


def atomic_write(path: Path, data: bytes) -> None:
    """
    Writes data to a temporary file next to path and renames it into place.

    A concurrent reader sees either the previous contents or the new ones,
    never a truncated file. An existing file keeps its permission bits; a new
    file gets 0o666 minus the process umask, as with a plain open().

    :param path: The destination file.
    :param data: The complete new contents.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if path.exists():
            shutil.copymode(path, temp_path)
        else:
            os.chmod(temp_path, 0o666 & ~UMASK)
        os.replace(temp_path, path)
    finally:
        temp_path.unlink(missing_ok=True)


def backup_path_for(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)


def backup_file(path: Path) -> Optional[Path]:
    """
    Copies the current bytes of path to '<path>.bak', replacing an older backup.

    Best effort: a failed backup is logged and never blocks the caller.

    :param path: The file about to be overwritten.
    :return: The backup path, or None if there was nothing to back up or it failed.
    """
    if not path.is_file():
        return None
    backup = backup_path_for(path)
    try:
        atomic_write(backup, path.read_bytes())
        shutil.copymode(path, backup)
        log.debug(f"Backed up '{path}' to '{backup}'")
        return backup
    except OSError as e:
        log.warning(f"Could not back up '{path}' before writing: {e}")
        return None
