"""
Structured editing of directive-style configuration files.

Nginx (``key value;``) and Redis (``key value``) configuration is parsed into
lines, changed by directive key and written back atomically. Comments and
unrelated lines are kept as they are.
"""

import hashlib
import logging
import os
import pwd
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Union

from . import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


def file_checksum(path: Union[str, Path]) -> Optional[str]:
    """SHA-256 of a file's contents, or None if it does not exist."""
    path = Path(path)
    if not path.is_file():
        return None
    return hashlib.sha256(path.read_bytes()).hexdigest()


def text_checksum(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def write_atomic(path: Union[str, Path], content: str, mode: Optional[int] = None) -> None:
    """
    Replace ``path`` with ``content`` via a temporary file in the same directory.

    The file keeps its current permissions unless ``mode`` is given; new files
    default to 0o644.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    current = path.stat() if path.exists() else None
    if mode is None:
        mode = current.st_mode & 0o777 if current else 0o644

    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        if current is not None:
            # Keep ownership, e.g. redis.conf is redis:redis 0640.
            try:
                os.chown(tmp_name, current.st_uid, current.st_gid)
            except PermissionError:
                logger.debug(f"Could not keep ownership of {path}")
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    logger.debug(f"Wrote {path}")


def backup_path(path: Union[str, Path]) -> Path:
    path = Path(path)
    return path.with_name(path.name + ".bak")


def backup_file(path: Union[str, Path], overwrite: bool = True) -> Optional[Path]:
    """
    Copy ``path`` to ``<path>.bak``.

    With ``overwrite=False`` an existing backup is left alone, so the backup
    always holds the original file.
    """
    path = Path(path)
    if not path.is_file():
        return None
    target = backup_path(path)
    if target.exists() and not overwrite:
        return target
    shutil.copy2(path, target)
    logger.info(f"Backed up {path} to {target}")
    return target


class DirectiveFile:
    """A directive-per-line configuration file."""

    def __init__(self, path: Union[str, Path], text: str = "", terminator: str = ""):
        self.path = Path(path)
        self.terminator = terminator
        self.lines: List[str] = text.splitlines()
        self._original = self.render()

    @classmethod
    def read(cls, path: Union[str, Path], terminator: str = "") -> "DirectiveFile":
        path = Path(path)
        text = path.read_text() if path.is_file() else ""
        return cls(path, text, terminator)

    @staticmethod
    def _key_of(line: str) -> Optional[str]:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            return None
        return stripped.split(None, 1)[0].rstrip(";")

    def _value_of(self, line: str) -> str:
        parts = line.strip().split(None, 1)
        value = parts[1] if len(parts) > 1 else ""
        if self.terminator and value.endswith(self.terminator):
            value = value[: -len(self.terminator)]
        return value.strip()

    def _format(self, key: str, value: str, indent: str = "") -> str:
        return f"{indent}{key} {value}{self.terminator}"

    def keys(self) -> List[str]:
        return [k for k in (self._key_of(line) for line in self.lines) if k]

    def get(self, key: str) -> Optional[str]:
        for line in self.lines:
            if self._key_of(line) == key:
                return self._value_of(line)
        return None

    def set(self, key: str, value: str) -> bool:
        """
        Set ``key`` to ``value``: the first occurrence is replaced in place and
        later duplicates are dropped; the directive is appended if absent.
        Returns True when the content changed.
        """
        before = self.render()
        new_lines: List[str] = []
        seen = False
        for line in self.lines:
            if self._key_of(line) == key:
                if seen:
                    continue
                indent = line[: len(line) - len(line.lstrip())]
                new_lines.append(self._format(key, value, indent))
                seen = True
            else:
                new_lines.append(line)
        if not seen:
            new_lines.append(self._format(key, value))
        self.lines = new_lines
        return self.render() != before

    def render(self) -> str:
        return "\n".join(self.lines) + "\n" if self.lines else ""

    @property
    def changed(self) -> bool:
        return self.render() != self._original

    def save(self, backup: bool = True, mode: Optional[int] = None) -> bool:
        """Write the file if it changed, keeping a one-time backup of the original."""
        if not self.changed:
            return False
        if backup:
            backup_file(self.path, overwrite=False)
        write_atomic(self.path, self.render(), mode=mode)
        self._original = self.render()
        return True


def ensure_owner(path: Union[str, Path], user: str) -> None:
    """chown ``path`` to ``user`` (and their primary group) if it is owned by someone else."""
    path = Path(path)
    pw = pwd.getpwnam(user)
    st = path.lstat()
    if st.st_uid != pw.pw_uid or st.st_gid != pw.pw_gid:
        os.lchown(str(path), pw.pw_uid, pw.pw_gid)
