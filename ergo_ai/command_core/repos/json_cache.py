from __future__ import annotations

"""JSON-file implementation of the generation cache.

Layout on disk (one directory per mode, never shared)::

    <root>/mock/commands.json
    <root>/mock/last.json
    <root>/production/commands.json
    <root>/production/last.json

``commands.json`` is a mapping from command name to the serialised
``ArtifactRecord``. Every write rewrites the whole file through a temporary
file in the same directory followed by ``os.replace``, so readers see either
the previous or the next complete store and concurrent writers resolve as
last-writer-wins.
"""

import contextlib
import json
import os
import tempfile
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ergo_ai.core.config import Mode
from ergo_ai.core.logging_config import get_logger

from ..errors import CacheCorruptionWarning
from ..schemas.domain import ArtifactRecord, LastInvocation

logger = get_logger(__name__)

COMMANDS_FILE = "commands.json"
LAST_FILE = "last.json"


def atomic_write_json(path: Path, payload: Any) -> None:
    """Write JSON to ``path`` via a fsynced temporary file and an atomic replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2, sort_keys=True)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


class GenerationCache:
    """
    Persistent, namespaced store of generated artifacts.

    Each instance is bound to one mode and one backing directory. Reads go to
    disk every time so updates written by another process are observed.

    Notes:
        - A store that cannot be read or parsed is treated as empty and a
          ``CacheCorruptionWarning`` is emitted.
        - Entries that fail validation (unknown permission kinds, wrong mode,
          key/name mismatch) are dropped with the same warning.
    """

    def __init__(self, root: Path, mode: Mode) -> None:
        self._mode = Mode(mode)
        self._dir = Path(root) / self._mode.value
        self._path = self._dir / COMMANDS_FILE
        self._last_path = self._dir / LAST_FILE

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def path(self) -> Path:
        return self._path

    @property
    def directory(self) -> Path:
        return self._dir

    # ------------------------------------------------------------------
    def _warn(self, message: str) -> None:
        logger.warning(message)
        warnings.warn(message, CacheCorruptionWarning, stacklevel=4)

    def _read_json(self, path: Path) -> Optional[Any]:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            self._warn(f"cache file {path} is unreadable ({exc}); treating it as empty")
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            self._warn(f"cache file {path} is corrupt ({exc.msg} at line {exc.lineno}); treating it as empty")
            return None

    def _load(self) -> Dict[str, ArtifactRecord]:
        data = self._read_json(self._path)
        if data is None:
            return {}
        if not isinstance(data, dict):
            self._warn(f"cache file {self._path} does not contain a mapping; treating it as empty")
            return {}

        records: Dict[str, ArtifactRecord] = {}
        for name, raw in data.items():
            try:
                record = ArtifactRecord.model_validate(raw)
            except ValidationError as exc:
                self._warn(f"dropping invalid cache entry '{name}' in {self._path}: {exc.error_count()} error(s)")
                continue
            if record.mode != self._mode or record.name != name:
                self._warn(f"dropping cache entry '{name}' in {self._path}: it belongs to another namespace")
                continue
            records[name] = record
        return records

    def _write(self, records: Dict[str, ArtifactRecord]) -> None:
        payload = {name: records[name].model_dump(mode="json") for name in sorted(records)}
        atomic_write_json(self._path, payload)

    # ------------------------------------------------------------------
    def get(self, name: str) -> Optional[ArtifactRecord]:
        record = self._load().get(name)
        if record is not None:
            logger.debug(f"cache hit for '{name}' in {self._mode.value} (revision {record.revision})")
        return record

    def put(self, record: ArtifactRecord) -> None:
        if record.mode != self._mode:
            raise ValueError(f"cannot store a {record.mode.value} record in the {self._mode.value} cache")
        records = self._load()
        records[record.name] = record
        self._write(records)
        logger.info(f"stored '{record.name}' revision {record.revision} in {self._path}")

    def invalidate(self, name: str) -> bool:
        records = self._load()
        if name not in records:
            return False
        del records[name]
        self._write(records)
        logger.info(f"removed '{name}' from {self._path}")
        return True

    def list_records(self) -> list[ArtifactRecord]:
        records = self._load()
        return [records[name] for name in sorted(records)]

    def clear(self) -> int:
        """Remove every record in this namespace and return how many were removed."""
        records = self._load()
        self._write({})
        with contextlib.suppress(FileNotFoundError):
            self._last_path.unlink()
        logger.info(f"cleared {len(records)} command(s) from {self._path}")
        return len(records)

    def stats(self) -> Dict[str, Any]:
        records = self.list_records()
        total_usage = sum(r.usage_count for r in records)
        return {
            "mode": self._mode.value,
            "path": str(self._path),
            "total_commands": len(records),
            "total_usage": total_usage,
            "average_usage": (total_usage / len(records)) if records else 0.0,
            "approved": sum(1 for r in records if r.is_approved),
        }

    # ------------------------------------------------------------------
    def get_last(self) -> Optional[LastInvocation]:
        data = self._read_json(self._last_path)
        if data is None:
            return None
        try:
            return LastInvocation.model_validate(data)
        except ValidationError:
            self._warn(f"last-command pointer {self._last_path} is invalid; ignoring it")
            return None

    def set_last(self, last: LastInvocation) -> None:
        atomic_write_json(self._last_path, last.model_dump(mode="json"))
