"""Directory-backed named cache partitions for the offline cache.

Each partition is a subdirectory; each entry is one file holding a
length-prefixed JSON header block followed by the raw response body. Entries
are written to a temp file and renamed into place, so readers only ever see
complete entries.
"""
from __future__ import annotations

import hashlib
import json
import os
import shutil
import struct
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

_HEADER = struct.Struct(">I")
_SUFFIX = ".entry"


def request_key(method: str, url: str) -> str:
    return hashlib.sha256(f"{method.upper()} {url}".encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    method: str
    url: str
    status_code: int
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""


class CachePartition:
    def __init__(self, name: str, path: str):
        self.name = name
        self.path = path
        os.makedirs(path, exist_ok=True)

    def _entry_path(self, method: str, url: str) -> str:
        return os.path.join(self.path, request_key(method, url) + _SUFFIX)

    def match(self, method: str, url: str) -> Optional[CacheEntry]:
        try:
            with open(self._entry_path(method, url), "rb") as f:
                raw = f.read()
        except FileNotFoundError:
            return None
        (meta_len,) = _HEADER.unpack_from(raw, 0)
        meta = json.loads(raw[_HEADER.size:_HEADER.size + meta_len].decode("utf-8"))
        return CacheEntry(
            method=meta["method"],
            url=meta["url"],
            status_code=meta["status_code"],
            headers=[(k, v) for k, v in meta["headers"]],
            body=raw[_HEADER.size + meta_len:],
        )

    def put(self, entry: CacheEntry) -> None:
        meta = json.dumps({
            "method": entry.method,
            "url": entry.url,
            "status_code": entry.status_code,
            "headers": entry.headers,
        }).encode("utf-8")
        final = self._entry_path(entry.method, entry.url)
        tmp = f"{final}.{uuid.uuid4().hex}.tmp"
        try:
            with open(tmp, "wb") as f:
                f.write(_HEADER.pack(len(meta)))
                f.write(meta)
                f.write(entry.body)
            os.replace(tmp, final)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def __len__(self) -> int:
        return sum(1 for n in os.listdir(self.path) if n.endswith(_SUFFIX))


class CacheStorage:
    """The set of named partitions under one root directory."""

    def __init__(self, root: str):
        self.root = root
        os.makedirs(root, exist_ok=True)

    def keys(self) -> List[str]:
        return sorted(
            n for n in os.listdir(self.root) if os.path.isdir(os.path.join(self.root, n))
        )

    def open(self, name: str) -> CachePartition:
        if not name or os.sep in name or name in (".", ".."):
            raise ValueError(f"Invalid cache name: {name!r}")
        return CachePartition(name, os.path.join(self.root, name))

    def delete(self, name: str) -> bool:
        path = os.path.join(self.root, name)
        if not os.path.isdir(path):
            return False
        shutil.rmtree(path)
        return True

    def match(self, method: str, url: str) -> Optional[CacheEntry]:
        """First hit across all partitions."""
        for name in self.keys():
            entry = self.open(name).match(method, url)
            if entry is not None:
                return entry
        return None
