import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

import yaml

from deployer.constants import STANDARD_JSON_FORMAT

T = TypeVar("T")


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def _replace_atomic(filepath: Path, write: Callable[[Any], None], mode: str = "w") -> Path:
    filepath.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{filepath.name}.", suffix=".tmp", dir=filepath.parent
    )
    try:
        with os.fdopen(fd, mode) as file:
            write(file)
            file.flush()
            os.fsync(file.fileno())
        os.replace(temp_name, filepath)
    except BaseException:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
        raise
    return filepath


def write_json_atomic(data: Any, filepath: Path) -> Path:
    """
    Writes JSON to a temporary file next to `filepath` and renames it into place,
    so readers only ever observe the previous or the new complete file.
    """

    def _dump(file) -> None:
        json.dump(data, file, **STANDARD_JSON_FORMAT)
        file.write("\n")

    return _replace_atomic(filepath, _dump)


def write_bytes_atomic(content: bytes, filepath: Path) -> Path:
    """Puts back raw file content, e.g. a snapshot taken before an update."""
    return _replace_atomic(filepath, lambda file: file.write(content), mode="wb")


def backoff_delays(
    attempts: int, initial_delay: float, multiplier: float, max_delay: float
) -> Tuple[float, ...]:
    """Delays slept between consecutive attempts (one fewer than attempts)."""
    delays = list()
    delay = initial_delay
    for _ in range(max(attempts - 1, 0)):
        delays.append(min(delay, max_delay))
        delay *= multiplier
    return tuple(delays)


def call_with_retries(
    func: Callable[[], T],
    retry_on: Tuple[Type[BaseException], ...],
    delays: Tuple[float, ...],
    sleep: Callable[[float], Any] = time.sleep,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """
    Calls `func` until it succeeds, retrying exceptions in `retry_on` once per entry
    in `delays`. The last exception is re-raised once the delays are exhausted.
    """
    attempt = 1
    while True:
        try:
            return func()
        except retry_on as e:
            if attempt > len(delays):
                raise
            delay = delays[attempt - 1]
            if on_retry:
                on_retry(attempt, e, delay)
            sleep(delay)
            attempt += 1
