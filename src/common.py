"""Common utilities shared by the executor, asset store and stage hooks."""

import json
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o640


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except OSError as e:
        return -1, '', str(e)


def write_file_atomic(path: Path, data: bytes, mode: int = DEFAULT_FILE_MODE) -> None:
    """Write data to path via a temp file in the same directory and rename.

    The rename is atomic on POSIX filesystems, so readers see either the old
    or the new content, never a partial write.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f'.{path.name}-', dir=path.parent)
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def read_json_object(path: Path) -> dict[str, Any]:
    """Load a JSON file whose top level must be an object.

    Raises:
        ValueError: If the content is not valid JSON or not an object
        OSError: If the file cannot be read
    """
    with open(path, encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object, got {type(data).__name__}")
    return data


def dump_json(data: Any) -> bytes:
    """Serialize data to compact JSON bytes, preserving key order."""
    return json.dumps(data, separators=(',', ':')).encode('utf-8')


def cause_chain(exc: BaseException) -> list[str]:
    """Messages of the exceptions an error was raised from, outermost first."""
    causes = []
    cause = exc.__cause__
    while cause is not None:
        causes.append(str(cause))
        cause = cause.__cause__
    return causes
