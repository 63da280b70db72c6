import base64

import pytest

from save.errors import SnapshotDecodeError
from save.serializers import decode_snapshot, dump_tags, encode_snapshot, load_tags


def test_chunked_encoding_matches_plain_base64():
    data = bytes(range(256)) * 500  # spans many chunks, not chunk-aligned
    for chunk in (3, 4, 1000, 8192 * 3):
        encoded = encode_snapshot(data, chunk)
        assert encoded == base64.b64encode(data).decode("ascii")
        assert decode_snapshot(encoded, chunk) == data


def test_decode_ignores_whitespace():
    encoded = encode_snapshot(b"sqlite image bytes")
    wrapped = "\n".join(encoded[i:i + 8] for i in range(0, len(encoded), 8))
    assert decode_snapshot(wrapped) == b"sqlite image bytes"


@pytest.mark.parametrize("payload", [None, "", "   ", "abc", "ab!d"])
def test_decode_rejects_bad_payloads(payload):
    with pytest.raises(SnapshotDecodeError):
        decode_snapshot(payload)


def test_tags_keep_order_and_unicode():
    raw = dump_tags(["1:2,5", "0:3,4", "地下:1,1"])
    assert load_tags(raw) == ["1:2,5", "0:3,4", "地下:1,1"]
    assert load_tags("") == []
    assert load_tags(None) == []
    with pytest.raises(ValueError):
        load_tags('{"a": 1}')
