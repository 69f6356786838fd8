"""Filesystem-backed credential store."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

from gateway.errors import StorageError
from gateway.storage.base import MULTI_DEVICE_PREFIX, CACHE_SUFFIX, CredentialStore

LOGGER = logging.getLogger(__name__)

CREDS_FILE = "creds.json"


class FileCredentialStore(CredentialStore):
    """Stores multi-device credentials as a directory and everything else as JSON files."""

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def path_for(self, name: str) -> Path:
        if name.startswith(MULTI_DEVICE_PREFIX) and not name.endswith(CACHE_SUFFIX):
            return self._base_dir / name
        return self._base_dir / f"{name}.json"

    def load(self, name: str) -> dict[str, Any]:
        path = self.path_for(name)
        if path.is_dir():
            path = path / CREDS_FILE
        if not path.is_file():
            return {}
        try:
            with path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except OSError as exc:
            raise StorageError(f"Failed to read {path}") from exc
        except json.JSONDecodeError:
            LOGGER.warning("Ignoring corrupt state file %s", path)
            return {}
        if not isinstance(raw, dict):
            LOGGER.warning("Ignoring non-mapping state file %s", path)
            return {}
        return raw

    def save(self, name: str, state: dict[str, Any]) -> None:
        path = self.path_for(name)
        if path.suffix != ".json":
            path.mkdir(parents=True, exist_ok=True)
            path = path / CREDS_FILE
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(state, handle, default=str)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise StorageError(f"Failed to write {path}") from exc

    def delete(self, name: str) -> None:
        path = self.path_for(name)
        if path.is_dir():
            shutil.rmtree(path, ignore_errors=True)
            return
        with contextlib.suppress(OSError):
            path.unlink()

    def list_entries(self) -> list[str]:
        self._base_dir.mkdir(parents=True, exist_ok=True)
        return sorted(entry.name for entry in self._base_dir.iterdir() if not entry.name.startswith("."))
