# /save/serializers.py

from __future__ import annotations
import base64
import binascii
import json
from typing import Iterable, List, Optional

from .errors import SnapshotDecodeError

# 8192 source bytes per chunk, rounded to a multiple of 3 so chunk outputs concatenate cleanly
DEFAULT_CHUNK_SIZE = 8192 * 3


def _aligned(chunk_size: int) -> int:
    chunk_size = max(3, int(chunk_size))
    return chunk_size - (chunk_size % 3)


def encode_snapshot(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Base64-encode a database image in bounded chunks."""
    step = _aligned(chunk_size)
    view = memoryview(data)
    parts: List[str] = []
    for i in range(0, len(view), step):
        parts.append(base64.b64encode(view[i:i + step]).decode("ascii"))
    return "".join(parts)


def decode_snapshot(text: Optional[str], chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    """Reverse encode_snapshot(). Raises SnapshotDecodeError on empty or malformed input."""
    if not text or not text.strip():
        raise SnapshotDecodeError("snapshot payload is empty")
    text = "".join(text.split())
    if len(text) % 4:
        raise SnapshotDecodeError(f"snapshot payload length {len(text)} is not a multiple of 4")
    # 4 encoded chars per 3 bytes
    step = _aligned(chunk_size) // 3 * 4
    out = bytearray()
    try:
        for i in range(0, len(text), step):
            out += base64.b64decode(text[i:i + step], validate=True)
    except (binascii.Error, ValueError) as e:
        raise SnapshotDecodeError(f"snapshot payload is not valid base64: {e}") from e
    return bytes(out)


def dump_tags(tags: Iterable[str]) -> str:
    """Encode a set-like list of location tags for a TEXT column."""
    return json.dumps([str(t) for t in tags], ensure_ascii=False)


def load_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    value = json.loads(raw)
    if not isinstance(value, list):
        raise ValueError(f"expected a JSON list, got {type(value).__name__}")
    return [str(v) for v in value]
