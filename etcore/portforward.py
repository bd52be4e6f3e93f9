"""Coordinates all forwarded sources and destinations of one session.

Socket handlers follow the interface described in :mod:`etcore.source` and
:mod:`etcore.destination`, plus ``connect(endpoint) -> int`` which raises
``OSError`` when the connection fails. A connection given to
:meth:`PortForwardHandler.handle_packet` needs ``write_packet(packet)``.
"""

from __future__ import annotations

import logging
import os
import random
import tempfile

from etcore.destination import ForwardDestinationHandler
from etcore.messages import (
    Packet,
    PortForwardData,
    PortForwardDestinationRequest,
    PortForwardDestinationResponse,
    PortForwardSourceRequest,
    PortForwardSourceResponse,
    SocketEndpoint,
    TerminalPacketType,
)
from etcore.source import ForwardSourceHandler
from etcore.util import temp_directory

_log = logging.getLogger(__name__)

_MAX_SOCKET_ID = 2**31 - 1
_MAX_ID_ATTEMPTS = 100000
_OWNER_ONLY = 0o700


class PortForwardHandler:
    """Owns the source and destination handlers of a session."""

    def __init__(self, network_socket_handler, pipe_socket_handler) -> None:
        self.network_socket_handler = network_socket_handler
        self.pipe_socket_handler = pipe_socket_handler
        self._destination_handlers: dict[int, ForwardDestinationHandler] = {}
        self._source_handlers: list[ForwardSourceHandler] = []
        self._socket_id_sources: dict[int, ForwardSourceHandler] = {}

    def update(
        self,
    ) -> tuple[list[PortForwardDestinationRequest], list[PortForwardData]]:
        """Poll every handler; return new destination requests and data to send."""
        requests: list[PortForwardDestinationRequest] = []
        data: list[PortForwardData] = []

        for source in self._source_handlers:
            data.extend(source.update())
            fd = source.listen()
            if fd is not None:
                requests.append(
                    PortForwardDestinationRequest(destination=source.destination, fd=fd)
                )

        for socket_id, destination in list(self._destination_handlers.items()):
            data.extend(destination.update())
            if destination.fd is None:
                # Drop the dead handler; the rest are picked up next time.
                del self._destination_handlers[socket_id]
                break

        return requests, data

    def create_source(
        self,
        request: PortForwardSourceRequest,
        want_name: bool,
        uid: int,
        gid: int,
    ) -> tuple[PortForwardSourceResponse, str | None]:
        """Start listening for a forward described by ``request``.

        Without a source in the request a private pipe is created and its path
        is returned alongside the response; ``want_name`` must then be true.
        Problems the client can cause come back as an error response.
        """
        if request.source is not None and want_name:
            return (
                PortForwardSourceResponse(
                    error="Do not set a source when forwarding named pipes "
                    "with environment variables"
                ),
                None,
            )

        name: str | None = None
        if request.source is not None:
            source = request.source
        else:
            if not want_name:
                raise RuntimeError(
                    "Tried to create a pipe but without a place to put the name!"
                )
            directory = tempfile.mkdtemp(
                prefix="et_forward_sock_", dir=temp_directory()
            )
            os.chmod(directory, _OWNER_ONLY)
            os.chown(directory, uid, gid)
            name = directory + "/sock"
            source = SocketEndpoint(name=name)
            _log.info("Creating pipe at %s", name)

        is_tcp = request.source is not None and request.source.port is not None
        if not is_tcp and (uid < 0 or gid < 0):
            raise RuntimeError(
                "Tried to create a unix socket forward with no userid/groupid"
            )

        socket_handler = (
            self.network_socket_handler if is_tcp else self.pipe_socket_handler
        )
        try:
            handler = ForwardSourceHandler(
                socket_handler, source, request.destination
            )
        except OSError as exc:
            return PortForwardSourceResponse(error=exc.strerror or str(exc)), None

        if not is_tcp and source.name is not None:
            os.chmod(source.name, _OWNER_ONLY)
            os.chown(source.name, uid, gid)
        self._source_handlers.append(handler)
        return PortForwardSourceResponse(), name

    def _connect(self, request: PortForwardDestinationRequest) -> tuple[int, bool]:
        port = request.destination.port
        if port is None:
            return self.pipe_socket_handler.connect(request.destination), False
        try:
            return (
                self.network_socket_handler.connect(
                    SocketEndpoint(name="::1", port=port)
                ),
                True,
            )
        except OSError:
            return (
                self.network_socket_handler.connect(
                    SocketEndpoint(name="127.0.0.1", port=port)
                ),
                True,
            )

    def create_destination(
        self, request: PortForwardDestinationRequest
    ) -> PortForwardDestinationResponse:
        """Connect to the requested local destination and assign it a socket id."""
        response = PortForwardDestinationResponse(client_fd=request.fd)
        try:
            fd, is_tcp = self._connect(request)
        except OSError as exc:
            response.error = exc.strerror or str(exc)
            return response

        socket_id = random.randint(0, _MAX_SOCKET_ID)
        attempts = 0
        while socket_id in self._destination_handlers:
            socket_id = random.randint(0, _MAX_SOCKET_ID)
            attempts += 1
            if attempts >= _MAX_ID_ATTEMPTS:
                response.error = "Could not find empty socket id"
                return response

        _log.info("Created socket/fd pair: %d %d", socket_id, fd)
        socket_handler = (
            self.network_socket_handler if is_tcp else self.pipe_socket_handler
        )
        self._destination_handlers[socket_id] = ForwardDestinationHandler(
            socket_handler, fd, socket_id
        )
        response.socket_id = socket_id
        return response

    def _handle_data(self, data: PortForwardData) -> None:
        if data.source_to_destination:
            destination = self._destination_handlers.get(data.socket_id)
            if destination is None:
                _log.error(
                    "Got data for a socket id that has already closed: %d",
                    data.socket_id,
                )
            elif data.closed or data.error is not None:
                _log.info("Port forward socket closed: %d", data.socket_id)
                destination.close()
                del self._destination_handlers[data.socket_id]
            else:
                destination.write(data.buffer)
        elif data.closed or data.error is not None:
            _log.info("Port forward socket closed: %d", data.socket_id)
            self.close_source_socket_id(data.socket_id)
        else:
            self.send_data_to_source_on_socket(data.socket_id, data.buffer)

    def handle_packet(self, packet: Packet, connection) -> None:
        """Act on a port forwarding packet received over ``connection``.

        Raises ``ValueError`` for a packet that is not about port forwarding.
        """
        kind = TerminalPacketType(packet.header)
        if kind is TerminalPacketType.PORT_FORWARD_DATA:
            self._handle_data(PortForwardData.decode(packet.payload))
        elif kind is TerminalPacketType.PORT_FORWARD_DESTINATION_REQUEST:
            request = PortForwardDestinationRequest.decode(packet.payload)
            _log.info("Got new port destination request for %s", request.destination)
            response = self.create_destination(request)
            connection.write_packet(
                Packet(
                    TerminalPacketType.PORT_FORWARD_DESTINATION_RESPONSE,
                    response.encode(),
                )
            )
        elif kind is TerminalPacketType.PORT_FORWARD_DESTINATION_RESPONSE:
            response = PortForwardDestinationResponse.decode(packet.payload)
            if response.error is not None or response.socket_id is None:
                _log.info(
                    "Could not connect to server through tunnel: %s", response.error
                )
                self.close_source_fd(response.client_fd)
            else:
                _log.info(
                    "Received socket/fd map from server: %d %d",
                    response.socket_id,
                    response.client_fd,
                )
                self.add_source_socket_id(response.socket_id, response.client_fd)
        else:
            raise ValueError(f"Unknown packet type: {int(packet.header)}")

    def close_source_fd(self, fd: int) -> None:
        """Close an accepted source socket that never got a socket id."""
        for source in self._source_handlers:
            if source.has_unassigned_fd(fd):
                source.close_unassigned_fd(fd)
                return
        _log.error(
            "Tried to close an unassigned socket that didn't exist "
            "(maybe it was already removed?): %d",
            fd,
        )

    def add_source_socket_id(self, socket_id: int, source_fd: int) -> None:
        """Bind the accepted ``source_fd`` to ``socket_id``."""
        for source in self._source_handlers:
            if source.has_unassigned_fd(source_fd):
                source.add_socket(socket_id, source_fd)
                self._socket_id_sources[socket_id] = source
                return
        _log.error(
            "Tried to add a socketId but the corresponding sourceFd is "
            "already dead: %d %d",
            socket_id,
            source_fd,
        )

    def close_source_socket_id(self, socket_id: int) -> None:
        """Close the source socket bound to ``socket_id``."""
        source = self._socket_id_sources.pop(socket_id, None)
        if source is None:
            _log.error("Tried to close a socket id that doesn't exist")
            return
        source.close_socket(socket_id)

    def send_data_to_source_on_socket(self, socket_id: int, data: bytes) -> None:
        """Write ``data`` to the source socket bound to ``socket_id``."""
        source = self._socket_id_sources.get(socket_id)
        if source is None:
            _log.error(
                "Tried to send data on a socket id that doesn't exist: %d", socket_id
            )
            return
        source.send_data_on_socket(socket_id, data)