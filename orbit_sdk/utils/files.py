"""
JSON files that other processes may read while we write them.

Writes go to a hidden temp file in the same directory, are fsynced, then
``os.replace``d over the target, so a reader sees either the old record or
the new one, never a torn write.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Optional, Union

from ..errors import ConfigurationError

PathLike = Union[str, "os.PathLike[str]"]

__all__ = ["atomic_write_bytes", "atomic_write_json", "read_json", "safe_name"]

# one path component: no separators, no leading dot, no ".."
_SAFE_NAME = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]{0,127}")


def atomic_write_bytes(path: PathLike, data: bytes) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.parent / f".{target.name}.{os.getpid()}.tmp"
    with open(tmp, "wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, target)
    return target


def atomic_write_json(path: PathLike, obj: Any) -> Path:
    return atomic_write_bytes(path, (json.dumps(obj, indent=2, sort_keys=True) + "\n").encode("utf-8"))


def read_json(path: PathLike) -> Optional[Any]:
    """Parsed content of `path`, or None if it does not exist."""
    try:
        with open(path, "rb") as f:
            return json.loads(f.read().decode("utf-8"))
    except FileNotFoundError:
        return None


def safe_name(value: Any, what: str = "name") -> str:
    """`value` if it can be used as a single file or directory name, else ConfigurationError."""
    if not isinstance(value, str) or not _SAFE_NAME.fullmatch(value) or ".." in value:
        raise ConfigurationError(f"invalid {what} {value!r}: use letters, digits, '.', '_' or '-'")
    return value
