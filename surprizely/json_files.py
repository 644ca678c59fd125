import os
import json
import logging
import tempfile

from errors import PersistenceError

logger = logging.getLogger("json_files")


def _safe_mkdir(path: str):
    if path:
        os.makedirs(path, exist_ok=True)


def atomic_write_json(path: str, obj):
    """Write obj to path through a temp file in the same directory, then replace."""
    directory = os.path.dirname(path)
    try:
        _safe_mkdir(directory)
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=directory or None)
    except OSError as e:
        raise PersistenceError(f"cannot write {path}: {e}") from e
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(obj, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as e:
        raise PersistenceError(f"cannot write {path}: {e}") from e
    finally:
        try:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        except OSError:
            pass


def read_json(path: str):
    """Return the decoded file, or None when it is missing or unreadable."""
    if not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable data file %s: %s", path, e)
        return None
