from typing import Dict, Optional, Protocol
from pathlib import Path
import asyncio
import os
import tempfile
import zlib
import structlog

from chronicle.domain.errors import CorruptChain, RecordNotFound
from chronicle.domain.ledger.codec import cid_for_content

logger = structlog.get_logger(__name__)

_RAW = b"\x00"
_COMPRESSED = b"\x01"


class ContentStore(Protocol):
    """Content-addressable storage collaborator"""

    async def upload(
        self,
        data: bytes,
        *,
        name: str = "",
        compression: bool = True,
        encryption_password: Optional[str] = None,
    ) -> str:
        ...

    async def download(self, cid: str) -> bytes:
        ...


def _encode_blob(data: bytes, compression: bool) -> bytes:
    if compression:
        return _COMPRESSED + zlib.compress(data)
    return _RAW + data


def _decode_blob(cid: str, blob: bytes) -> bytes:
    flag, body = blob[:1], blob[1:]
    if flag == _COMPRESSED:
        try:
            data = zlib.decompress(body)
        except zlib.error as e:
            raise CorruptChain(f"Stored content for {cid} could not be decompressed: {e}", cid=cid) from e
    elif flag == _RAW:
        data = body
    else:
        raise CorruptChain(f"Unknown blob encoding for {cid}", cid=cid)

    # Content must hash back to the identifier it was stored under
    if cid_for_content(data) != cid:
        raise CorruptChain(f"Stored content does not match cid {cid}", cid=cid)
    return data


def _reject_encryption(encryption_password: Optional[str]) -> None:
    if encryption_password:
        raise ValueError("Local content stores do not support encrypted uploads")


class InMemoryContentStore:
    """Process-local content store, used for development and tests"""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.names: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def upload(
        self,
        data: bytes,
        *,
        name: str = "",
        compression: bool = True,
        encryption_password: Optional[str] = None,
    ) -> str:
        """Store bytes and return their content identifier"""

        _reject_encryption(encryption_password)
        cid = cid_for_content(data)

        async with self._lock:
            self.blobs[cid] = _encode_blob(data, compression)
            self.names[cid] = name

        logger.debug("Stored content", cid=cid, name=name, size=len(data))
        return cid

    async def download(self, cid: str) -> bytes:
        """Fetch bytes previously stored under ``cid``"""

        async with self._lock:
            blob = self.blobs.get(cid)

        if blob is None:
            raise RecordNotFound(cid)
        return _decode_blob(cid, blob)


class FileContentStore:
    """Content store that keeps one file per cid under a directory"""

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, cid: str) -> Path:
        return self.root / f"{cid}.blob"

    async def upload(
        self,
        data: bytes,
        *,
        name: str = "",
        compression: bool = True,
        encryption_password: Optional[str] = None,
    ) -> str:
        """Store bytes and return their content identifier"""

        _reject_encryption(encryption_password)
        cid = cid_for_content(data)
        path = self._path(cid)

        if not path.exists():
            await asyncio.to_thread(atomic_write, path, _encode_blob(data, compression))

        logger.debug("Stored content", cid=cid, name=name, size=len(data))
        return cid

    async def download(self, cid: str) -> bytes:
        """Fetch bytes previously stored under ``cid``"""

        path = self._path(cid)
        if not path.exists():
            raise RecordNotFound(cid)

        blob = await asyncio.to_thread(path.read_bytes)
        return _decode_blob(cid, blob)


def atomic_write(path: Path, blob: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(blob)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
