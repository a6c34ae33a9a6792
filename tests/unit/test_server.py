"""
Unit tests for helpers in gracefulhttp.server.
"""

from gracefulhttp.server import partial_request


class TestPartialRequest:
    """Tests for partial_request."""

    def test_request_line_and_headers(self):
        """Test that a rejected request keeps its line and headers."""
        raw = b"GET /hello?x=1 HTTP/2.0\r\nX-Request-Id: r-1\r\nUser-Agent: curl\r\n\r\n"

        request = partial_request(raw, ("10.0.0.7", 53122))

        assert request.method == "GET"
        assert request.path == "/hello"
        assert request.headers["x-request-id"] == "r-1"
        assert request.user_agent == "curl"
        assert request.remote_addr == "10.0.0.7:53122"

    def test_unusable_request_line(self):
        """Test the "-" fallback for method and path."""
        request = partial_request(b"NONSENSE\r\n\r\n", ("10.0.0.7", 53122))

        assert request.method == "-"
        assert request.path == "-"

    def test_no_bytes(self):
        """Test a request that never sent anything."""
        request = partial_request(b"", ("10.0.0.7", 53122))

        assert request.method == "-"
        assert request.headers == {}

    def test_incomplete_head(self):
        """Test that headers before a missing terminator are still read."""
        request = partial_request(b"POST /up HTTP/1.1\r\nX-Request-Id: r-2\r\nX-Big: aaa", ("10.0.0.7", 1))

        assert request.method == "POST"
        assert request.headers["x-request-id"] == "r-2"
