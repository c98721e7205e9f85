"""Content-addressed, write-once artifact cache.

Storage layout, one record per ContentKey::

    {root}/{key}.bin         compiled binary
    {root}/{key}.json        serialized AbiDescription
    {root}/{key}.meta.json   record metadata (digest, contract name, created_at)

The binary is written last, and every file is written atomically
(temp file + rename), so the presence of ``{key}.bin`` means the record is
complete.  Records are never deleted.  Concurrent writers of the same key are
serialized by the build coordinator, not here.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from alkaneforge.core.errors import CacheIOError
from alkaneforge.models.abi import AbiDescription
from alkaneforge.models.artifacts import ArtifactRecord

logger = logging.getLogger(__name__)


class ArtifactCache:
    """Filesystem-backed ArtifactRecord store keyed by ContentKey.

    Parameters
    ----------
    root:
        Cache directory.  Created if missing.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheIOError(f"Cannot create artifact cache at {self._root}: {exc}") from exc

    @property
    def root(self) -> Path:
        return self._root

    def binary_path(self, key: str) -> Path:
        return self._root / f"{key}.bin"

    def abi_path(self, key: str) -> Path:
        return self._root / f"{key}.json"

    def meta_path(self, key: str) -> Path:
        return self._root / f"{key}.meta.json"

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def contains(self, key: str) -> bool:
        return self.binary_path(key).exists()

    def lookup(self, key: str) -> ArtifactRecord | None:
        """Return the record for *key*, or ``None`` on a miss.

        A record whose ABI side-car is missing or unreadable is returned with
        ``abi=None`` so the caller can backfill it.
        """
        bin_path = self.binary_path(key)
        try:
            binary = bin_path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheIOError(f"Cannot read cached binary {bin_path}: {exc}", key=key) from exc

        abi = self._read_abi(key)
        meta = self._read_meta(key)
        try:
            created_at = datetime.fromisoformat(meta["created_at"])
        except (KeyError, TypeError, ValueError):
            created_at = self._mtime(bin_path)

        return ArtifactRecord(
            key=key,
            binary=binary,
            abi=abi,
            digest=str(meta.get("digest") or ""),
            contract_name=str(meta.get("contract_name") or ""),
            created_at=created_at,
        )

    def keys(self) -> list[str]:
        """All keys with a complete record, sorted."""
        try:
            return sorted(p.name.removesuffix(".bin") for p in self._root.glob("*.bin"))
        except OSError as exc:
            raise CacheIOError(f"Cannot list artifact cache {self._root}: {exc}") from exc

    def _read_abi(self, key: str) -> AbiDescription | None:
        path = self.abi_path(key)
        try:
            return AbiDescription.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (ValidationError, UnicodeDecodeError) as exc:
            logger.warning("cache:abi_unreadable key=%s error=%s", key, exc)
            return None
        except OSError as exc:
            raise CacheIOError(f"Cannot read ABI side-car {path}: {exc}", key=key) from exc

    def _read_meta(self, key: str) -> dict:
        path = self.meta_path(key)
        try:
            meta = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except ValueError as exc:
            logger.warning("cache:meta_unreadable key=%s error=%s", key, exc)
            return {}
        except OSError as exc:
            raise CacheIOError(f"Cannot read metadata {path}: {exc}", key=key) from exc
        return meta if isinstance(meta, dict) else {}

    @staticmethod
    def _mtime(path: Path) -> datetime:
        try:
            return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        except OSError:
            return datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def commit(
        self,
        key: str,
        binary: bytes,
        abi: AbiDescription,
        *,
        digest: str = "",
        contract_name: str = "",
    ) -> ArtifactRecord:
        """Durably store a record for *key*.

        Write-once: if a complete record already exists it is returned
        unchanged (a missing ABI side-car is filled in).
        """
        existing = self.lookup(key)
        if existing is not None:
            logger.debug("cache:commit_skipped key=%s (record exists)", key)
            if existing.abi is None:
                self.store_abi(key, abi)
                existing = existing.model_copy(update={"abi": abi})
            return existing

        record = ArtifactRecord(
            key=key,
            binary=binary,
            abi=abi,
            digest=digest,
            contract_name=contract_name,
        )
        self._atomic_write(self.abi_path(key), abi.to_json().encode("utf-8"), key)
        self._atomic_write(
            self.meta_path(key),
            json.dumps(record.metadata(), indent=2, sort_keys=True).encode("utf-8"),
            key,
        )
        self._atomic_write(self.binary_path(key), binary, key)
        logger.info("cache:commit key=%s size=%d", key, len(binary))
        return record

    def store_abi(self, key: str, abi: AbiDescription) -> None:
        """Write (or rewrite) only the ABI side-car for an existing record."""
        self._atomic_write(self.abi_path(key), abi.to_json().encode("utf-8"), key)
        logger.info("cache:abi_backfill key=%s", key)

    def _atomic_write(self, path: Path, data: bytes, key: str) -> None:
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp.write_bytes(data)
            os.replace(tmp, path)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise CacheIOError(f"Cannot write {path}: {exc}", key=key) from exc
