"""Bidirectional byte relay between a client and its upstream tunnel.

A ``RelayPair`` couples the two sockets of one proxied request. Each
direction is copied by its own thread with an 8 KiB buffer; whichever
direction stops first (EOF or error) closes both sockets through a single
once-only close, which unblocks the other direction.
"""

import contextlib
import socket
import threading
from typing import BinaryIO, Final

from loguru import logger

from .proxy_stats import ProxyStats

BUFFER_SIZE: Final = 8192


def _shutdown_and_close(sock: socket.socket) -> None:
    # shutdown wakes threads blocked in recv even while a makefile() reader holds the fd
    with contextlib.suppress(OSError):
        sock.shutdown(socket.SHUT_RDWR)
    with contextlib.suppress(OSError):
        sock.close()


class RelayPair:
    """One client connection and one upstream connection relayed as a unit."""

    def __init__(
        self,
        client: socket.socket,
        client_reader: BinaryIO,
        upstream: socket.socket,
        stats: ProxyStats | None = None,
    ) -> None:
        """Create a relay pair.

        Args:
            client: Accepted client socket
            client_reader: Buffered reader over ``client``; may hold bytes already read past the request head
            upstream: Established upstream tunnel
            stats: Optional statistics tracker
        """
        self.client = client
        self.client_reader = client_reader
        self.upstream = upstream
        self.stats = stats
        self._close_lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close both sockets. Only the first call has any effect."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        _shutdown_and_close(self.client)
        _shutdown_and_close(self.upstream)

    def _client_to_upstream(self) -> None:
        try:
            while True:
                data = self.client_reader.read1(BUFFER_SIZE)
                if not data:
                    break
                self.upstream.sendall(data)
                if self.stats:
                    self.stats.update_bytes(len(data), 0)
        except OSError as e:
            if not self._closed:
                logger.debug(f"Client to upstream relay stopped: {e}")
        finally:
            self.close()

    def _upstream_to_client(self) -> None:
        try:
            while True:
                data = self.upstream.recv(BUFFER_SIZE)
                if not data:
                    break
                self.client.sendall(data)
                if self.stats:
                    self.stats.update_bytes(0, len(data))
        except OSError as e:
            if not self._closed:
                logger.debug(f"Upstream to client relay stopped: {e}")
        finally:
            self.close()

    def run(self) -> None:
        """Relay until either side closes.

        The client to upstream direction runs on a new thread, the other on the
        calling thread. Returns once both directions have finished.
        """
        outbound = threading.Thread(
            target=self._client_to_upstream,
            name="relay-client-upstream",
            daemon=True,
        )
        outbound.start()
        self._upstream_to_client()
        outbound.join()
