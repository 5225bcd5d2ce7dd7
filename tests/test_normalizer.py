import base64

from gfw2dnsmasq.normalizer import normalize_file, normalize_input, split_rules, try_decode_base64


def test_plain_text_passes_through():
    data = b"||example.com^\n!comment\n@@||safe.com\n"

    result = normalize_input(data)

    assert not result.was_base64
    assert result.lines == ["||example.com^", "!comment", "@@||safe.com"]


def test_base64_feed_is_decoded():
    text = b"[AutoProxy 0.2.1]\n||example.com\n.google.com\n"
    encoded = base64.encodebytes(text)  # wrapped at 76 columns like gfwlist.txt

    result = normalize_input(encoded)

    assert result.was_base64
    assert result.lines == ["[AutoProxy 0.2.1]", "||example.com", ".google.com"]


def test_base64_without_text_is_ignored():
    encoded = base64.b64encode(b"\x00\x01\x02")

    assert try_decode_base64(encoded) is None
    result = normalize_input(encoded)
    assert not result.was_base64
    assert result.lines == [encoded.decode()]


def test_invalid_base64_falls_back_silently():
    assert try_decode_base64(b"not base64 at all!") is None
    assert try_decode_base64(b"") is None


def test_rules_are_split_on_pipes():
    result = normalize_input(b"a.com|b.com||c.com^\nd.com\n")

    assert result.rules == ["a.com", "b.com", "", "c.com^", "d.com"]
    assert result.lines == ["a.com|b.com||c.com^", "d.com"]


def test_split_preserves_order_and_duplicates():
    assert split_rules("x.com|x.com\nx.com") == ["x.com", "x.com", "x.com"]


def test_normalize_file_reads_bytes(tmp_path):
    path = tmp_path / "list.txt"
    path.write_bytes("\ufeff||example.com^\r\n".encode("utf-8"))

    result = normalize_file(str(path))

    assert result.lines == ["||example.com^"]


def test_only_newline_separates_rules():
    result = normalize_input(b"a.com\x1cb.com\r\nc.com\x0bd.com|e.com\n")

    assert result.lines == ["a.com\x1cb.com", "c.com\x0bd.com|e.com"]
    assert result.rules == ["a.com\x1cb.com", "c.com\x0bd.com", "e.com"]
