# codec.py
# Content identifiers, anchor digests and canonical record serialization.
#
# A cid is "b" + lowercase unpadded base32 of the BLAKE2b-256 hash of the
# uploaded bytes. The anchor digest is that same 32-byte hash as 0x-hex, so a
# digest read back from the chain resolves to exactly one cid.

import base64
import hashlib
import json
from typing import Any, Dict

CID_PREFIX = "b"
HASH_SIZE = 32


def content_hash(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=HASH_SIZE).digest()


def cid_from_hash(raw_hash: bytes) -> str:
    if len(raw_hash) != HASH_SIZE:
        raise ValueError(f"Expected a {HASH_SIZE}-byte hash, got {len(raw_hash)} bytes.")
    encoded = base64.b32encode(raw_hash).decode("ascii").rstrip("=").lower()
    return CID_PREFIX + encoded


def cid_for_content(data: bytes) -> str:
    return cid_from_hash(content_hash(data))


def hash_from_cid(cid: str) -> bytes:
    if not cid or not cid.startswith(CID_PREFIX):
        raise ValueError(f"Malformed cid: {cid!r}")
    body = cid[len(CID_PREFIX):].upper()
    body += "=" * (-len(body) % 8)
    try:
        raw_hash = base64.b32decode(body)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Malformed cid: {cid!r}") from e
    if len(raw_hash) != HASH_SIZE:
        raise ValueError(f"Malformed cid: {cid!r}")
    return raw_hash


def digest_from_cid(cid: str) -> str:
    """Short on-chain digest for a cid."""
    return "0x" + hash_from_cid(cid).hex()


def cid_from_digest(digest: str) -> str:
    """Inverse of digest_from_cid. Raises ValueError on malformed input."""
    hex_part = digest[2:] if digest.startswith("0x") else digest
    try:
        raw_hash = bytes.fromhex(hex_part)
    except ValueError as e:
        raise ValueError(f"Malformed digest: {digest!r}") from e
    return cid_from_hash(raw_hash)


def canonical_json(value: Dict[str, Any]) -> bytes:
    """Deterministic serialization. Signatures depend on sort_keys."""
    return json.dumps(value, sort_keys=True, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
