"""The connecting end of one forwarded socket.

The socket handler passed in is duck-typed and must provide:

* ``has_data(fd) -> bool``
* ``read(fd, size) -> bytes``: ``b""`` at end of stream. It raises
  ``BlockingIOError`` when no data is ready and ``OSError`` on failure.
* ``write_all_or_return(fd, data)``
* ``close(fd)``
"""

from __future__ import annotations

import logging

from etcore.messages import PortForwardData

_log = logging.getLogger(__name__)

_READ_SIZE = 1024


class ForwardDestinationHandler:
    """Relays data between a local destination socket and its remote source."""

    def __init__(self, socket_handler, fd: int, socket_id: int) -> None:
        self.socket_handler = socket_handler
        self.fd: int | None = fd
        self.socket_id = socket_id

    def close(self) -> None:
        """Close the destination socket."""
        if self.fd is not None:
            self.socket_handler.close(self.fd)

    def write(self, data: bytes) -> None:
        """Send ``data`` to the destination socket."""
        _log.debug("Writing %d bytes to port destination", len(data))
        if self.fd is not None:
            self.socket_handler.write_all_or_return(self.fd, data)

    def update(self) -> list[PortForwardData]:
        """Drain readable data from the destination into messages for the source.

        After end of stream or an error the socket is closed and ``fd`` becomes
        ``None``; later calls return nothing.
        """
        messages: list[PortForwardData] = []
        if self.fd is None:
            return messages

        while self.socket_handler.has_data(self.fd):
            message = PortForwardData(
                socket_id=self.socket_id, source_to_destination=False
            )
            try:
                chunk = self.socket_handler.read(self.fd, _READ_SIZE)
            except BlockingIOError:
                break
            except OSError as exc:
                reason = exc.strerror or str(exc)
                _log.debug("Got error reading socket %s %s", self.socket_id, reason)
                message.error = reason
                chunk = None
            else:
                if chunk:
                    _log.debug(
                        "Reading %d bytes from socket %s", len(chunk), self.socket_id
                    )
                    message.buffer = bytes(chunk)
                else:
                    _log.debug("Got close reading socket %s", self.socket_id)
                    message.closed = True
            messages.append(message)

            if not chunk:
                _log.info("Socket %s closed", self.socket_id)
                if message.error is not None:
                    _log.error(
                        "Socket %s closed with error %s", self.socket_id, message.error
                    )
                self.socket_handler.close(self.fd)
                self.fd = None
                break
        return messages