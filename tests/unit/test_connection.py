"""
Unit tests for Connection, over a local socket pair.
"""

import socket
import threading
import time

import pytest

from gracefulhttp.core.connection import Connection, ConnectionState, RequestTooLargeError


@pytest.fixture
def sockets():
    """(server side, client side) of a connected socket pair."""
    server_sock, client_sock = socket.socketpair()
    yield server_sock, client_sock
    for s in (server_sock, client_sock):
        try:
            s.close()
        except OSError:
            pass


def make_connection(sock: socket.socket, **kwargs) -> Connection:
    options = dict(read_timeout=1.0, write_timeout=1.0, idle_timeout=1.0)
    options.update(kwargs)
    return Connection(socket=sock, address=("127.0.0.1", 40000), **options)


class TestReadRequest:
    """Tests for Connection.read_request."""

    def test_simple_request(self, sockets):
        """Test reading one request."""
        server_sock, client_sock = sockets
        conn = make_connection(server_sock)
        client_sock.sendall(b"GET / HTTP/1.1\r\nHost: x\r\n\r\n")

        assert conn.read_request() == b"GET / HTTP/1.1\r\nHost: x\r\n\r\n"
        assert conn.state is ConnectionState.READING
        assert conn.requests_handled == 1

    def test_request_split_across_sends(self, sockets):
        """Test buffering until the header terminator arrives."""
        server_sock, client_sock = sockets
        conn = make_connection(server_sock)

        def send_slowly():
            for part in (b"GET / HT", b"TP/1.1\r\nHost", b": x\r\n\r\n"):
                client_sock.sendall(part)
                time.sleep(0.05)

        sender = threading.Thread(target=send_slowly)
        sender.start()
        data = conn.read_request()
        sender.join()

        assert data == b"GET / HTTP/1.1\r\nHost: x\r\n\r\n"

    def test_body_by_content_length(self, sockets):
        """Test that exactly Content-Length body bytes are read."""
        server_sock, client_sock = sockets
        conn = make_connection(server_sock)
        client_sock.sendall(b"POST / HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello")

        assert conn.read_request().endswith(b"\r\n\r\nhello")

    def test_pipelined_requests(self, sockets):
        """Test that bytes past one request are kept for the next."""
        server_sock, client_sock = sockets
        conn = make_connection(server_sock)
        client_sock.sendall(b"GET /a HTTP/1.1\r\n\r\nGET /b HTTP/1.1\r\n\r\n")

        assert conn.read_request() == b"GET /a HTTP/1.1\r\n\r\n"
        assert conn.read_request() == b"GET /b HTTP/1.1\r\n\r\n"

    def test_peer_closed(self, sockets):
        """Test that EOF before any byte reads as None."""
        server_sock, client_sock = sockets
        conn = make_connection(server_sock)
        client_sock.close()

        assert conn.read_request() is None

    def test_first_request_timeout(self, sockets):
        """Test that a silent new connection raises TimeoutError."""
        server_sock, _ = sockets
        conn = make_connection(server_sock, read_timeout=0.1)

        with pytest.raises(TimeoutError):
            conn.read_request()

    def test_partial_request_timeout(self, sockets):
        """Test read_timeout once a request has started."""
        server_sock, client_sock = sockets
        conn = make_connection(server_sock, read_timeout=0.2)
        client_sock.sendall(b"GET / HTTP/1.1\r\n")

        with pytest.raises(TimeoutError):
            conn.read_request()

        assert conn.pending_bytes == b"GET / HTTP/1.1\r\n"

    def test_keep_alive_idle_timeout(self, sockets):
        """Test that an idle keep-alive connection reads as None."""
        server_sock, client_sock = sockets
        conn = make_connection(server_sock, idle_timeout=0.1)
        client_sock.sendall(b"GET / HTTP/1.1\r\n\r\n")
        conn.read_request()
        conn.set_keep_alive()

        started = time.monotonic()
        assert conn.read_request() is None
        assert time.monotonic() - started < 1.0

    def test_request_too_large(self, sockets):
        """Test the max_request_size limit."""
        server_sock, client_sock = sockets
        conn = make_connection(server_sock, max_request_size=64)
        client_sock.sendall(b"GET / HTTP/1.1\r\nX-Big: " + b"a" * 200)

        with pytest.raises(RequestTooLargeError):
            conn.read_request()


class TestStates:
    """Tests for state transitions used by the drain."""

    def test_processing_writing_keep_alive(self, sockets):
        """Test the normal request cycle."""
        server_sock, client_sock = sockets
        conn = make_connection(server_sock)
        client_sock.sendall(b"GET / HTTP/1.1\r\n\r\n")

        conn.read_request()
        conn.mark_processing()
        assert conn.state is ConnectionState.PROCESSING

        assert conn.send_response(b"HTTP/1.1 204 No Content\r\n\r\n") is True
        assert conn.state is ConnectionState.WRITING
        assert client_sock.recv(1024).startswith(b"HTTP/1.1 204")

        conn.set_keep_alive()
        assert conn.state is ConnectionState.KEEP_ALIVE

    def test_send_after_close(self, sockets):
        """Test that a closed connection refuses to send."""
        server_sock, _ = sockets
        conn = make_connection(server_sock)
        conn.abort()

        assert conn.send_response(b"x") is False


class TestClosing:
    """Tests for close, abort and close_if_idle."""

    def test_close_if_idle_keep_alive(self, sockets):
        """Test that KEEP_ALIVE connections are idle."""
        server_sock, _ = sockets
        conn = make_connection(server_sock)
        conn.state = ConnectionState.KEEP_ALIVE

        assert conn.close_if_idle(new_connection_grace=5.0) is True
        assert conn.state is ConnectionState.CLOSED

    def test_close_if_idle_new_within_grace(self, sockets):
        """Test that a just-accepted connection is left alone."""
        server_sock, _ = sockets
        conn = make_connection(server_sock)

        assert conn.close_if_idle(new_connection_grace=5.0) is False
        assert conn.state is ConnectionState.NEW

    def test_close_if_idle_new_after_grace(self, sockets):
        """Test that an old silent connection counts as idle."""
        server_sock, _ = sockets
        conn = make_connection(server_sock)
        conn.created_at -= 10

        assert conn.close_if_idle(new_connection_grace=5.0) is True

    def test_close_if_idle_busy(self, sockets):
        """Test that busy connections are never closed as idle."""
        server_sock, _ = sockets
        conn = make_connection(server_sock)

        for state in (ConnectionState.READING, ConnectionState.PROCESSING, ConnectionState.WRITING):
            conn.state = state
            assert conn.close_if_idle(new_connection_grace=0.0) is False

    def test_abort_wakes_blocked_reader(self, sockets):
        """Test that abort() unblocks a thread waiting in recv()."""
        server_sock, _ = sockets
        conn = make_connection(server_sock, read_timeout=10.0)
        result = []

        def read():
            try:
                result.append(conn.read_request())
            except TimeoutError as e:
                result.append(e)

        reader = threading.Thread(target=read)
        reader.start()
        time.sleep(0.1)
        conn.abort()
        reader.join(timeout=2.0)

        assert not reader.is_alive()
        assert result == [None]
        assert conn.is_closed

    def test_graceful_close_sends_fin(self, sockets):
        """Test that close() ends the stream for the peer."""
        server_sock, client_sock = sockets
        conn = make_connection(server_sock)

        client_sock.shutdown(socket.SHUT_WR)
        conn.close()

        assert client_sock.recv(1024) == b""
        assert conn.state is ConnectionState.CLOSED

    def test_context_manager_closes(self, sockets):
        """Test with-statement cleanup."""
        server_sock, client_sock = sockets
        client_sock.shutdown(socket.SHUT_WR)

        with make_connection(server_sock) as conn:
            pass

        assert conn.is_closed
