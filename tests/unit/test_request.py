"""
Unit tests for HTTP request parsing.
"""

import pytest

from gracefulhttp.context import RequestContext
from gracefulhttp.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/hello"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)

    def test_parse_headers(self, sample_get_request: bytes):
        """Test that headers are parsed with lowercase names."""
        request = parse_request(sample_get_request)

        assert request.headers["host"] == "localhost:9000"
        assert request.user_agent == "pytest"
        assert request.get_header("X-Request-Id") == "abc-123"
        assert request.is_keep_alive is True

    def test_parse_query_params(self, sample_get_request: bytes):
        """Test query parameter parsing."""
        request = parse_request(sample_get_request)

        assert request.get_query("lang") == "en"
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_parse_post_with_body(self, sample_post_request: bytes):
        """Test that the body is exactly Content-Length bytes."""
        request = parse_request(sample_post_request)

        assert request.method == "POST"
        assert request.path == "/echo"
        assert request.body == b'{"name": "John"}'
        assert request.is_keep_alive is False

    def test_parse_path_with_special_chars(self):
        """Test URL-encoded query parsing."""
        raw = b"GET /search?q=hello%20world HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/search"
        assert request.get_query("q") == "hello world"

    def test_parse_extension_method(self):
        """Test that any token method is accepted for the router to judge."""
        raw = b"PURGE /hello HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request(raw)

        assert request.method == "PURGE"
        assert request.path == "/hello"

    def test_parse_non_token_method(self):
        """Test that a method with separator characters is a 400."""
        raw = b"GE(T /path HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_parse_invalid_request_line(self):
        """Test handling of malformed request line."""
        raw = b"GET\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_parse_unsupported_version(self):
        """Test that HTTP/2.0 in a request line gives 505."""
        raw = b"GET / HTTP/2.0\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 505

    def test_parse_missing_headers(self):
        """Test parsing request with no headers."""
        raw = b"GET / HTTP/1.1\r\n\r\n"
        request = parse_request(raw)

        assert request.method == "GET"
        assert request.path == "/"
        assert len(request.headers) == 0

    def test_parse_path_with_dots(self):
        """Test that dots in a path are passed through unchanged."""
        raw = b"GET /hello..world HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/hello..world"

    def test_parse_request_too_large(self):
        """Test that oversized requests are rejected."""
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\n" + b"X-Large: " + b"A" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413

    def test_invalid_content_length(self):
        """Test that a non-numeric Content-Length is a 400."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: abc\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_http_version_parsing(self):
        """Test HTTP/1.0 and HTTP/1.1 keep-alive defaults."""
        request_10 = parse_request(b"GET / HTTP/1.0\r\nHost: test\r\n\r\n")
        assert request_10.version == "HTTP/1.0"
        assert request_10.is_keep_alive is False

        request_11 = parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n\r\n")
        assert request_11.version == "HTTP/1.1"
        assert request_11.is_keep_alive is True

    def test_case_insensitive_headers(self):
        """Test that header names are case-insensitive."""
        raw = b"GET / HTTP/1.1\r\nX-REQUEST-ID: 42\r\n\r\n"
        request = parse_request(raw)

        assert request.get_header("X-Request-Id") == "42"
        assert request.get_header("x-request-id") == "42"

    def test_repeated_headers_are_joined(self):
        """Test that a repeated header keeps both values."""
        raw = b"GET / HTTP/1.1\r\nAccept: a\r\nAccept: b\r\n\r\n"
        request = parse_request(raw)

        assert request.get_header("Accept") == "a, b"

    def test_parsed_request_has_empty_context(self, sample_get_request: bytes):
        """Test that the parser never sets a correlation id itself."""
        request = parse_request(sample_get_request)

        assert request.context == RequestContext()
        assert request.context.correlation_id is None


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_get_header_default(self):
        """Test get_header with default value."""
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_remote_addr(self):
        """Test the ip:port form used in access logs."""
        request = HTTPRequest(method="GET", path="/", client_address=("10.0.0.7", 53122))

        assert request.remote_addr == "10.0.0.7:53122"

    def test_with_context_returns_new_request(self):
        """Test that with_context leaves the original request untouched."""
        original = HTTPRequest(method="GET", path="/")
        derived = original.with_context(RequestContext(correlation_id="abc"))

        assert derived is not original
        assert derived.context.correlation_id == "abc"
        assert original.context.correlation_id is None
        assert derived.path == original.path
