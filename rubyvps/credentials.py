"""Generated service credentials persisted for the deploy account."""

import logging
import secrets
from pathlib import Path
from typing import Optional, Union

from . import LOGGER_NAME
from .configfile import ensure_owner, write_atomic

logger = logging.getLogger(LOGGER_NAME)

PASSWORD_BYTES = 32


def generate_password(nbytes: int = PASSWORD_BYTES) -> str:
    """Cryptographically random password, hex encoded so it is safe in URLs and configs."""
    return secrets.token_hex(nbytes)


def read_password(path: Union[str, Path]) -> Optional[str]:
    path = Path(path)
    if not path.is_file():
        return None
    value = path.read_text().strip()
    return value or None


def store_password(path: Union[str, Path], password: str, owner: str) -> None:
    """Write ``password`` readable only by ``owner``. Refuses to replace an existing one."""
    path = Path(path)
    if read_password(path) is not None:
        raise FileExistsError(f"Refusing to overwrite existing password file {path}")
    write_atomic(path, password + "\n", mode=0o600)
    ensure_owner(path, owner)
    logger.info(f"Password stored in {path} (mode 600)")
