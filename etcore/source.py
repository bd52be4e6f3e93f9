"""The listening end of a forwarded port or pipe.

The socket handler passed in is duck-typed and must provide, besides the
reading and writing methods described in :mod:`etcore.destination`:

* ``listen(endpoint)`` and ``stop_listening(endpoint)``
* ``get_endpoint_fds(endpoint) -> iterable of int``
* ``accept(fd) -> int | None``: ``None`` when no connection is pending.
"""

from __future__ import annotations

import logging

from etcore.messages import PortForwardData, SocketEndpoint

_log = logging.getLogger(__name__)

_READ_SIZE = 1024


class ForwardSourceHandler:
    """Accepts connections on ``source`` and relays them towards ``destination``.

    Accepted sockets stay unassigned until the far side answers with a socket
    id. Use :meth:`stop`, or the handler as a context manager, to stop
    listening.
    """

    def __init__(
        self, socket_handler, source: SocketEndpoint, destination: SocketEndpoint
    ) -> None:
        self.socket_handler = socket_handler
        self.source = source
        self.destination = destination
        self._unassigned_fds: set[int] = set()
        self._socket_fds: dict[int, int] = {}
        socket_handler.listen(source)

    def __enter__(self) -> ForwardSourceHandler:
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def stop(self) -> None:
        """Stop listening on the source endpoint."""
        self.socket_handler.stop_listening(self.source)

    def listen(self) -> int | None:
        """Accept one pending connection, if any, and return its fd."""
        for listen_fd in self.socket_handler.get_endpoint_fds(self.source):
            fd = self.socket_handler.accept(listen_fd)
            if fd is not None and fd > -1:
                _log.info(
                    "Tunnel %s -> %s socket created with fd %d",
                    self.source,
                    self.destination,
                    fd,
                )
                self._unassigned_fds.add(fd)
                return fd
        return None

    def update(self) -> list[PortForwardData]:
        """Drain readable data from every assigned socket into messages."""
        messages: list[PortForwardData] = []
        finished: list[int] = []

        for socket_id, fd in self._socket_fds.items():
            while self.socket_handler.has_data(fd):
                message = PortForwardData(
                    socket_id=socket_id, source_to_destination=True
                )
                try:
                    chunk = self.socket_handler.read(fd, _READ_SIZE)
                except BlockingIOError:
                    break
                except OSError as exc:
                    reason = exc.strerror or str(exc)
                    _log.debug("Got error reading socket %s %s", socket_id, reason)
                    message.error = reason
                    chunk = None
                else:
                    if chunk:
                        _log.debug(
                            "Reading %d bytes from socket %s", len(chunk), socket_id
                        )
                        message.buffer = bytes(chunk)
                    else:
                        _log.debug("Got close reading socket %s", socket_id)
                        message.closed = True
                messages.append(message)
                if not chunk:
                    self.socket_handler.close(fd)
                    finished.append(socket_id)
                    break

        for socket_id in finished:
            del self._socket_fds[socket_id]
        return messages

    def has_unassigned_fd(self, fd: int) -> bool:
        """Tell whether ``fd`` was accepted but has no socket id yet."""
        return fd in self._unassigned_fds

    def close_unassigned_fd(self, fd: int) -> None:
        """Close an accepted socket that never got a socket id."""
        if fd not in self._unassigned_fds:
            _log.error("Tried to close an unassigned fd that doesn't exist")
            return
        self.socket_handler.close(fd)
        self._unassigned_fds.discard(fd)

    def add_socket(self, socket_id: int, source_fd: int) -> None:
        """Bind an accepted socket to the socket id chosen by the far side."""
        if source_fd not in self._unassigned_fds:
            _log.error(
                "Tried to close an unassigned fd that doesn't exist %d", source_fd
            )
            return
        _log.info("Adding socket: %d %d", socket_id, source_fd)
        self._unassigned_fds.discard(source_fd)
        self._socket_fds[socket_id] = source_fd

    def send_data_on_socket(self, socket_id: int, data: bytes) -> None:
        """Write ``data`` to the socket bound to ``socket_id``."""
        fd = self._socket_fds.get(socket_id)
        if fd is None:
            _log.error("Tried to write to a socket that no longer exists!")
            return
        self.socket_handler.write_all_or_return(fd, data)

    def close_socket(self, socket_id: int) -> None:
        """Close and forget the socket bound to ``socket_id``."""
        fd = self._socket_fds.pop(socket_id, None)
        if fd is None:
            _log.warning("Tried to remove a socket that no longer exists!")
            return
        self.socket_handler.close(fd)