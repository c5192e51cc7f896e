"""Unit tests for partial header reads and header splicing."""

import io
import json
import tempfile
from pathlib import Path

import pytest

from subdircache.cache.exceptions import CacheWriteError
from subdircache.cache.metadata import (
    extract_subjson,
    header_prefix,
    make_mod_etag,
    read_mod_and_etag,
    splice_cache_file,
)


@pytest.fixture
def temp_dir():
    """Create temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestReadModAndEtag:
    """Test reading the four leading header keys."""

    def test_extracts_only_headers(self, temp_dir):
        """Test that payload keys are not part of the result."""
        path = temp_dir / "cache.json"
        path.write_text(
            '{"_url":"u","_etag":"e","_mod":"m","_cache_control":"c",'
            '"other":{"big":"payload"}}'
        )

        assert read_mod_and_etag(path) == {
            "_url": "u",
            "_etag": "e",
            "_mod": "m",
            "_cache_control": "c",
        }

    def test_large_nested_payload(self, temp_dir):
        """Test that payload size and nesting do not matter."""
        payload = {"packages": {f"pkg-{i}": {"depends": ['a "quoted" dep']} for i in range(2000)}}
        path = temp_dir / "cache.json"
        path.write_text(
            '{"_url":"u","_etag":"e","_mod":"m","_cache_control":"c",'
            + json.dumps(payload)[1:]
        )

        result = read_mod_and_etag(path)
        assert list(result) == ["_url", "_etag", "_mod", "_cache_control"]
        assert result["_cache_control"] == "c"

    def test_escaped_quotes_in_values(self, temp_dir):
        """Test that escaped quotes inside a weak ETag are not counted."""
        headers = make_mod_etag(
            "https://conda.anaconda.org/conda-forge/linux-64",
            'W/"6092e6a2b6cec6ea5aade4e177c3edda-8"',
            "Sat, 04 Apr 2020 03:29:49 GMT",
            "public, max-age=1200",
        )
        path = temp_dir / "cache.json"
        path.write_bytes(header_prefix(headers) + b'"info":{"subdir":"linux-64"}}')

        result = read_mod_and_etag(path)
        assert result == headers
        assert result["_etag"] == 'W/"6092e6a2b6cec6ea5aade4e177c3edda-8"'

    def test_escaped_backslash_before_closing_quote(self, temp_dir):
        """Test that an escaped backslash does not escape the closing quote."""
        headers = make_mod_etag("u", "e\\", "m", "c")
        path = temp_dir / "cache.json"
        path.write_bytes(header_prefix(headers) + b'"x":1}')

        assert read_mod_and_etag(path) == headers

    def test_missing_file(self, temp_dir):
        """Test that an unreadable file yields no headers."""
        assert read_mod_and_etag(temp_dir / "missing.json") == {}

    def test_truncated_header(self, temp_dir):
        """Test that EOF before the fourth value yields no headers."""
        path = temp_dir / "cache.json"
        path.write_text('{"_url":"u","_etag":"e"')
        assert read_mod_and_etag(path) == {}

    def test_plain_repodata_without_headers(self, temp_dir):
        """Test that a cache file without header keys is rejected."""
        path = temp_dir / "cache.json"
        path.write_text('{"info":{"subdir":"noarch"},"packages":{"a":{"b":"c"}},"x":"y"}')
        assert read_mod_and_etag(path) == {}

    def test_wrong_key_order(self, temp_dir):
        """Test that the fixed key order is enforced."""
        path = temp_dir / "cache.json"
        path.write_text('{"_etag":"e","_url":"u","_mod":"m","_cache_control":"c","x":1}')
        assert read_mod_and_etag(path) == {}

    def test_non_string_value(self, temp_dir):
        """Test that garbage between quotes does not parse."""
        path = temp_dir / "cache.json"
        path.write_text('{"_url":"u","_etag":"e","_mod":5,"_cache_control":"c","x":"y"}')
        assert read_mod_and_etag(path) == {}


class TestExtractSubjson:
    """Test the raw byte scanner."""

    def test_stops_after_sixteen_quotes(self):
        stream = io.BytesIO(b'{"a":"1","b":"2","c":"3","d":"4","e":"5"}')
        assert extract_subjson(stream) == b'{"a":"1","b":"2","c":"3","d":"4"}'

    def test_returns_none_at_eof(self):
        assert extract_subjson(io.BytesIO(b'{"a":"1"}')) is None

    def test_spans_read_chunks(self):
        """Test a header longer than one read chunk."""
        long_url = "https://example.org/" + "x" * 10000
        stream = io.BytesIO(
            ('{"_url":"%s","_etag":"e","_mod":"m","_cache_control":"c"}' % long_url).encode()
        )
        assert json.loads(extract_subjson(stream))["_url"] == long_url


class TestHeaderPrefix:
    """Test header serialization."""

    def test_prefix_ends_with_comma(self):
        prefix = header_prefix(make_mod_etag("u", "e", "m", "c"))
        assert prefix == b'{"_url":"u","_etag":"e","_mod":"m","_cache_control":"c",'

    def test_missing_values_become_empty_strings(self):
        headers = make_mod_etag("u", None, None, None)
        assert headers == {"_url": "u", "_etag": "", "_mod": "", "_cache_control": ""}

    def test_rejects_incomplete_headers(self):
        with pytest.raises(ValueError):
            header_prefix({"_url": "u"})


class TestSpliceCacheFile:
    """Test writing the final cache file."""

    def test_splice_produces_merged_json(self, temp_dir):
        """Test that headers and payload form one JSON object."""
        staging = temp_dir / "staging.tmp"
        staging.write_text('{"pkg":1}')
        final = temp_dir / "cache.json"

        splice_cache_file(make_mod_etag("U", "E", "M", "C"), staging, final)

        assert json.loads(final.read_text()) == {
            "_url": "U",
            "_etag": "E",
            "_mod": "M",
            "_cache_control": "C",
            "pkg": 1,
        }

    def test_spliced_file_headers_readable(self, temp_dir):
        """Test that a spliced file can be scanned again."""
        staging = temp_dir / "staging.tmp"
        staging.write_text('{"info": {"subdir": "linux-64"}, "packages": {}}')
        final = temp_dir / "cache.json"
        headers = make_mod_etag("U", "E", "M", "public, max-age=60")

        splice_cache_file(headers, staging, final)

        assert read_mod_and_etag(final) == headers

    def test_splice_empty_object(self, temp_dir):
        """Test that an empty payload still yields valid JSON."""
        staging = temp_dir / "staging.tmp"
        staging.write_text("{ }")
        final = temp_dir / "cache.json"

        splice_cache_file(make_mod_etag("U", "E", "M", "C"), staging, final)

        assert json.loads(final.read_text()) == {
            "_url": "U",
            "_etag": "E",
            "_mod": "M",
            "_cache_control": "C",
        }

    def test_splice_non_json_payload_still_written(self, temp_dir):
        """Test that a payload not starting with '{' is spliced anyway."""
        staging = temp_dir / "staging.tmp"
        staging.write_bytes(b"BZh9garbage")
        final = temp_dir / "cache.json"

        splice_cache_file(make_mod_etag("U", "E", "M", "C"), staging, final)

        assert final.read_bytes().startswith(b'{"_url":"U"')

    def test_unopenable_final_file(self, temp_dir):
        """Test that a final path that cannot be opened is fatal."""
        staging = temp_dir / "staging.tmp"
        staging.write_text('{"pkg":1}')
        final = temp_dir / "is-a-dir.json"
        final.mkdir()

        with pytest.raises(CacheWriteError):
            splice_cache_file(make_mod_etag("U", "E", "M", "C"), staging, final)

    def test_copy_failure_removes_final_file(self, temp_dir):
        """Test that a failed copy leaves no partial cache file."""
        final = temp_dir / "cache.json"

        with pytest.raises(CacheWriteError):
            splice_cache_file(
                make_mod_etag("U", "E", "M", "C"), temp_dir / "missing.tmp", final
            )

        assert not final.exists()
