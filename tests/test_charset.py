import io

import pytest

from charset import codec_for, decode_stream, is_supported
from errors import MalformedDocumentError, UnsupportedCharsetError


@pytest.mark.parametrize("label", ["utf-8", "", "UTF-8", "  utf-8  "])
def test_utf8_and_empty_labels_return_same_stream(label):
    stream = io.BytesIO("héllo".encode("utf-8"))
    assert decode_stream(label, stream) is stream


def test_windows_1251_decodes_cyrillic():
    stream = io.BytesIO("Привет мир".encode("cp1251"))
    reader = decode_stream("windows-1251", stream)
    assert reader.read() == "Привет мир"


def test_labels_are_case_insensitive():
    stream = io.BytesIO("Ärger".encode("latin-1"))
    assert decode_stream("ISO-8859-1", stream).read() == "Ärger"


def test_koi8r_decodes():
    stream = io.BytesIO("Новости".encode("koi8_r"))
    assert decode_stream("koi8-r", stream).read() == "Новости"


def test_unsupported_charset_raises_with_label():
    with pytest.raises(UnsupportedCharsetError) as excinfo:
        decode_stream("shift_jis", io.BytesIO(b"abc"))
    assert "unsupported charset" in str(excinfo.value)
    assert excinfo.value.charset == "shift_jis"
    assert isinstance(excinfo.value, MalformedDocumentError)


def test_undecodable_bytes_are_replaced():
    reader = decode_stream("us-ascii", io.BytesIO(b"ok \xff"))
    assert reader.read() == "ok �"


def test_is_supported_and_codec_for():
    assert is_supported("cp1252")
    assert is_supported("")
    assert not is_supported("big5")
    assert codec_for("utf-8") is None
    assert codec_for("Latin2") == "iso8859_2"
