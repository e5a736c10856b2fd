"""
Atomic JSON persistence: write to a temp file in the same folder, then rename.
"""

import json
import os
import tempfile
from pathlib import Path


def write_json_atomic(filepath: str, data, indent=None) -> int:
    """
    Write data as JSON so readers only ever see the old or the new file.

    Returns:
        Number of bytes written
    """
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", suffix='.tmp', dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w') as f:
            json.dump(data, f, indent=indent)
            f.flush()
            os.fsync(f.fileno())
        size = os.path.getsize(tmp_path)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    return size


def write_bytes_atomic(filepath: str, data: bytes) -> None:
    """Write bytes so that a half-written file is never visible at filepath."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", suffix='.tmp', dir=str(path.parent))
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
