import io
import random
import re

import pytest

from snowflake_transport.amp_armor import (
    ArmorEncoder,
    ArmorError,
    UnknownVersionError,
    decode_armor,
    encode_armor,
)

ELEMENT_SIZE_LIMIT = 32 * 1024
BYTES_PER_CHUNK = 32


@pytest.mark.parametrize(
    "source, expected",
    [
        ("\n<pre>\n0\n</pre>\n", b""),
        ("\n<pre>\n0aGVsbG8gd29ybGQK\n</pre>\n", b"hello world\n"),
        (
            "\n0aGVsbG8gd29ybGQK\nblah blah blah\n<pre>\n0aGVsbG8gd29ybGQK\n</pre>\n"
            "0aGVsbG8gd29ybGQK\nblah blah blah\n",
            b"hello world\n",
        ),
        (
            "\n<pre>\n0QUJDREV\nGR0hJSkt\nMTU5PUFF\nSU1RVVld\n</pre>\njunk\n<pre>\n"
            "YWVowMTI\nzNDU2Nzg\n5Cg\n=\n</pre>\n<pre>\n=\n</pre>\n",
            b"ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789\n",
        ),
        ("blah <pre>0aGVsb<p>G8gd29</p>ybGQK</pre>", b"hello world\n"),
        ("blah <pre>\x200\x09aG\x0aV\x0csb\x0dG8\x20gd29ybGQK</pre>", b"hello world\n"),
    ],
)
def test_decoder_accepts(source, expected):
    assert decode_armor(source) == expected


@pytest.mark.parametrize(
    "source",
    [
        # no <pre> elements, hence no version indicator
        "\naGVsbG8gd29ybGQK\nblah blah blah\naGVsbG8gd29ybGQK\naGVsbG8gd29ybGQK\nblah blah blah\n",
        # empty <pre> elements, hence no version indicator
        "\naGVsbG8gd29ybGQK\nblah blah blah\n<pre>   </pre>\naGVsbG8gd29ybGQK\n"
        "aGVsbG8gd29ybGQK<pre></pre>\nblah blah blah\n",
        # HTML comment
        "blah <!-- <pre>aGVsbG8gd29ybGQK</pre> -->",
        # bad padding
        "\n<pre>\n0QUJDREV\nGR0hJSkt\nMTU5PUFF\nSU1RVVld\n</pre>\njunk\n<pre>\n"
        "YWVowMTI\nzNDU2Nzg\n5Cg\n=\n</pre>\n",
        # missing </pre>
        "blah <pre></pre><pre>0aGVsbG8gd29ybGQK",
        # nested <pre>
        "blah <pre>0aGVsb<pre>G8gd29</pre>ybGQK</pre>",
    ],
)
def test_decoder_rejects(source):
    with pytest.raises(ArmorError):
        decode_armor(source)


def test_bad_version_indicator():
    with pytest.raises(UnknownVersionError) as info:
        decode_armor("\n<pre>\n1aGVsbG8gd29ybGQK\n</pre>\n")
    assert info.value.version == "1"


def test_missing_end_tag_message():
    with pytest.raises(ArmorError, match="missing </pre> tag"):
        decode_armor("blah <pre></pre><pre>0aGVsbG8gd29ybGQK")


def test_stray_end_tag():
    with pytest.raises(ArmorError, match="unexpected </pre>"):
        decode_armor("<pre>0aGVsbG8gd29ybGQK</pre></pre>")


def test_oversized_text_rejected():
    with pytest.raises(ArmorError):
        decode_armor("<pre>0" + "A" * (ELEMENT_SIZE_LIMIT + 100) + "</pre>")


def test_decode_from_bytes_and_stream():
    doc = b"<pre>0aGVsbG8gd29ybGQK</pre>"
    assert decode_armor(doc) == b"hello world\n"
    assert decode_armor(io.BytesIO(doc)) == b"hello world\n"


def test_documented_example():
    encoded = encode_armor(b"This was encoded with AMP armor.")
    assert encoded.startswith(b"<!doctype html>\n<html amp>\n<head>\n")
    assert encoded.endswith(
        b"<body>\n<pre>\n0VGhpcyB3YXMgZW5jb2RlZCB3aXRoIEF\nNUCBhcm1vci4=\n"
        b"</pre>\n</body>\n</html>"
    )


def test_empty_input_encoding():
    encoded = encode_armor(b"")
    assert encoded.endswith(b"<body>\n<pre>\n0\n</pre>\n</body>\n</html>")
    assert decode_armor(encoded) == b""


def _round_trip_lengths():
    lengths = list(range(BYTES_PER_CHUNK * 2))
    for i in range(-10, 10):
        lengths.append(ELEMENT_SIZE_LIMIT + i)
        lengths.append(2 * ELEMENT_SIZE_LIMIT + i)
    return lengths


@pytest.mark.parametrize("length", _round_trip_lengths())
def test_round_trip(length):
    data = random.Random(length).randbytes(length)
    assert decode_armor(encode_armor(data)) == data


def test_incremental_writes_match_single_write():
    data = random.Random(7).randbytes(5000)
    buffer = io.BytesIO()
    with ArmorEncoder(buffer) as encoder:
        for start in range(0, len(data), 7):
            assert encoder.write(data[start : start + 7]) == len(data[start : start + 7])
    assert buffer.getvalue() == encode_armor(data)


def test_elements_stay_under_size_limit():
    data = random.Random(3).randbytes(3 * ELEMENT_SIZE_LIMIT)
    encoded = encode_armor(data).decode("ascii")
    elements = re.findall(r"<pre>(.*?)</pre>", encoded, re.DOTALL)
    assert len(elements) > 1
    assert all(len(text) < ELEMENT_SIZE_LIMIT for text in elements)
    for text in elements:
        chunks = text.split()
        assert all(len(chunk) <= BYTES_PER_CHUNK for chunk in chunks)


def test_write_after_close_fails():
    encoder = ArmorEncoder(io.BytesIO())
    encoder.close()
    with pytest.raises(ValueError):
        encoder.write(b"x")