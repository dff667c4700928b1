"""Statistics tracking and monitoring for the local tunnel proxy.

This module provides real-time statistics for one proxy server instance:
- Active client connection counting
- Tunnels opened and failed
- Data transfer tracking in both relay directions
- Historical bandwidth data

All counters are guarded by a lock because every client connection and
relay direction runs on its own thread.

Example:
    stats = ProxyStats()
    stats.connection_started()
    stats.update_bytes(sent=1024, received=2048)
    stats.connection_ended()
"""

import threading
import time
from collections import deque
from datetime import UTC, datetime


class ProxyStats:
    """Thread-safe statistics tracker for the local proxy server.

    Maintains real-time statistics about proxy server operations including:
    - Active connection count
    - Tunnel success and failure counts
    - Bandwidth usage and history
    - Total bytes transferred
    - Server uptime
    """

    def __init__(self) -> None:
        """Initialize proxy statistics tracker.

        Creates a tracker with zeroed counters, an empty bandwidth history
        buffer and a timezone aware start time.
        """
        self.active_connections = 0
        self.tunnels_opened = 0
        self.tunnels_failed = 0
        self.total_bytes_sent = 0
        self.total_bytes_received = 0
        self.bandwidth_history = deque(maxlen=60)  # Last 60 samples
        self.start_time = datetime.now(tz=UTC)
        self._lock = threading.Lock()

    def update_bytes(self, sent: int, received: int) -> None:
        """Update byte transfer statistics.

        Args:
            sent: Number of bytes relayed from client to upstream
            received: Number of bytes relayed from upstream to client
        """
        with self._lock:
            self.total_bytes_sent += sent
            self.total_bytes_received += received
            self.bandwidth_history.append((sent + received, time.time()))

    def get_bandwidth(self) -> float:
        """Calculate current bandwidth usage in bytes per second.

        Returns:
            float: Average bandwidth usage over last 5 seconds in bytes/second
        """
        with self._lock:
            cutoff = time.time() - 5
            recent = [bytes_ for bytes_, ts in self.bandwidth_history if ts > cutoff]
            if not recent:
                return 0
            return sum(recent) / 5

    def get_uptime(self) -> float:
        """Seconds since the tracker was created."""
        return (datetime.now(tz=UTC) - self.start_time).total_seconds()

    def connection_started(self) -> None:
        """Increment the active connection counter."""
        with self._lock:
            self.active_connections += 1

    def connection_ended(self) -> None:
        """Decrement the active connection counter."""
        with self._lock:
            self.active_connections -= 1

    def tunnel_opened(self) -> None:
        with self._lock:
            self.tunnels_opened += 1

    def tunnel_failed(self) -> None:
        with self._lock:
            self.tunnels_failed += 1
