"""Helpers for writing files that readers never see half written"""

from pathlib import Path
from typing import BinaryIO, Callable, Iterable
import os
import stat
import tempfile


def _read_umask() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return umask


# Read once, os.umask can only be queried by setting it
_UMASK = _read_umask()


def new_file_mode(target: Path) -> int:
    """Permission bits for a file written to target: those of the file it replaces, else 0666 minus the umask"""
    try:
        return stat.S_IMODE(os.stat(target).st_mode)
    except FileNotFoundError:
        return 0o666 & ~_UMASK


def replace_file(target: Path, write: Callable[[BinaryIO], None]) -> None:
    """Write to a temporary sibling of target and rename it into place

    The temporary file is removed when writing or renaming fails.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            write(f)
        os.chmod(tmp_path, new_file_mode(target))
        os.replace(tmp_path, target)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def write_chunks(chunks: Iterable[bytes]) -> Callable[[BinaryIO], None]:
    """Writer for replace_file that copies an iterable of byte chunks"""
    def write(f: BinaryIO) -> None:
        for chunk in chunks:
            f.write(chunk)
    return write
