import errno
import os
import shutil
import stat

import pytest

from etcore.messages import (
    Packet,
    PortForwardData,
    PortForwardDestinationRequest,
    PortForwardDestinationResponse,
    PortForwardSourceRequest,
    SocketEndpoint,
    TerminalPacketType,
)
from etcore.portforward import PortForwardHandler


class FakeSocketHandler:
    def __init__(self, first_fd=100):
        self.listening = {}
        self.pending = {}
        self.inbox = {}
        self.written = {}
        self.closed = []
        self.stopped = []
        self.connect_results = {}
        self.connect_attempts = []
        self._next = first_fd

    def listen(self, endpoint):
        fd = self._next
        self._next += 1
        self.listening[endpoint] = [fd]
        if endpoint.name and endpoint.port is None:
            with open(endpoint.name, "w"):
                pass
        return {fd}

    def stop_listening(self, endpoint):
        self.stopped.append(endpoint)
        self.listening.pop(endpoint, None)

    def get_endpoint_fds(self, endpoint):
        return set(self.listening.get(endpoint, ()))

    def accept(self, fd):
        queue = self.pending.get(fd)
        return queue.pop(0) if queue else None

    def has_data(self, fd):
        return bool(self.inbox.get(fd))

    def read(self, fd, size):
        item = self.inbox[fd].pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def write_all_or_return(self, fd, data):
        self.written.setdefault(fd, bytearray()).extend(data)

    def close(self, fd):
        self.closed.append(fd)

    def connect(self, endpoint):
        self.connect_attempts.append(endpoint)
        if endpoint in self.connect_results:
            return self.connect_results[endpoint]
        raise OSError(errno.ECONNREFUSED, os.strerror(errno.ECONNREFUSED))


class FakeConnection:
    def __init__(self):
        self.packets = []

    def write_packet(self, packet):
        self.packets.append(packet)


def make():
    network = FakeSocketHandler(100)
    pipe = FakeSocketHandler(500)
    return network, pipe, PortForwardHandler(network, pipe)


def data_packet(message):
    return Packet(TerminalPacketType.PORT_FORWARD_DATA, message.encode())


def test_create_destination_prefers_ipv6():
    network, _, handler = make()
    network.connect_results[SocketEndpoint(name="::1", port=22)] = 7
    response = handler.create_destination(
        PortForwardDestinationRequest(SocketEndpoint(port=22), fd=3)
    )
    assert response.client_fd == 3
    assert response.error is None
    assert 0 <= response.socket_id <= 2**31 - 1
    handler.handle_packet(
        data_packet(
            PortForwardData(response.socket_id, source_to_destination=True, buffer=b"x")
        ),
        FakeConnection(),
    )
    assert bytes(network.written[7]) == b"x"


def test_create_destination_falls_back_to_ipv4():
    network, _, handler = make()
    network.connect_results[SocketEndpoint(name="127.0.0.1", port=22)] = 9
    response = handler.create_destination(
        PortForwardDestinationRequest(SocketEndpoint(port=22), fd=3)
    )
    assert response.error is None
    assert network.connect_attempts == [
        SocketEndpoint(name="::1", port=22),
        SocketEndpoint(name="127.0.0.1", port=22),
    ]


def test_create_destination_reports_failure():
    _, _, handler = make()
    response = handler.create_destination(
        PortForwardDestinationRequest(SocketEndpoint(port=22), fd=3)
    )
    assert response.error == os.strerror(errno.ECONNREFUSED)
    assert response.socket_id is None
    assert response.client_fd == 3


def test_create_destination_uses_pipe_for_named_endpoint():
    network, pipe, handler = make()
    target = SocketEndpoint(name="/tmp/agent.sock")
    pipe.connect_results[target] = 12
    response = handler.create_destination(PortForwardDestinationRequest(target, fd=4))
    assert response.error is None
    assert pipe.connect_attempts == [target]
    assert network.connect_attempts == []


def test_destination_request_packet_gets_response():
    network, _, handler = make()
    network.connect_results[SocketEndpoint(name="::1", port=80)] = 7
    connection = FakeConnection()
    request = PortForwardDestinationRequest(SocketEndpoint(port=80), fd=5)
    handler.handle_packet(
        Packet(TerminalPacketType.PORT_FORWARD_DESTINATION_REQUEST, request.encode()),
        connection,
    )
    assert len(connection.packets) == 1
    sent = connection.packets[0]
    assert sent.header == TerminalPacketType.PORT_FORWARD_DESTINATION_RESPONSE
    response = PortForwardDestinationResponse.decode(sent.payload)
    assert response.client_fd == 5
    assert response.error is None


def test_closed_destination_is_dropped():
    network, _, handler = make()
    network.connect_results[SocketEndpoint(name="::1", port=80)] = 7
    response = handler.create_destination(
        PortForwardDestinationRequest(SocketEndpoint(port=80), fd=5)
    )
    connection = FakeConnection()
    handler.handle_packet(
        data_packet(
            PortForwardData(response.socket_id, source_to_destination=True, closed=True)
        ),
        connection,
    )
    assert network.closed == [7]
    handler.handle_packet(
        data_packet(
            PortForwardData(response.socket_id, source_to_destination=True, buffer=b"y")
        ),
        connection,
    )
    assert 7 not in network.written


def test_update_drops_finished_destination():
    network, _, handler = make()
    network.connect_results[SocketEndpoint(name="::1", port=80)] = 7
    response = handler.create_destination(
        PortForwardDestinationRequest(SocketEndpoint(port=80), fd=5)
    )
    network.inbox[7] = [b"reply", b""]
    requests, data = handler.update()
    assert requests == []
    assert [m.buffer for m in data] == [b"reply", b""]
    assert data[1].closed is True
    assert all(m.socket_id == response.socket_id for m in data)
    handler.handle_packet(
        data_packet(
            PortForwardData(response.socket_id, source_to_destination=True, buffer=b"z")
        ),
        FakeConnection(),
    )
    assert 7 not in network.written


def test_tcp_source_round_trip():
    network, _, handler = make()
    source = SocketEndpoint(port=8080)
    destination = SocketEndpoint(port=80)
    response, name = handler.create_source(
        PortForwardSourceRequest(destination=destination, source=source),
        False,
        -1,
        -1,
    )
    assert response.error is None
    assert name is None
    listen_fd = next(iter(network.listening[source]))

    network.pending[listen_fd] = [21]
    requests, data = handler.update()
    assert requests == [PortForwardDestinationRequest(destination, 21)]
    assert data == []

    connection = FakeConnection()
    handler.handle_packet(
        Packet(
            TerminalPacketType.PORT_FORWARD_DESTINATION_RESPONSE,
            PortForwardDestinationResponse(client_fd=21, socket_id=77).encode(),
        ),
        connection,
    )
    handler.handle_packet(
        data_packet(PortForwardData(77, source_to_destination=False, buffer=b"hi")),
        connection,
    )
    assert bytes(network.written[21]) == b"hi"

    network.inbox[21] = [b"back"]
    _, data = handler.update()
    assert data == [PortForwardData(77, source_to_destination=True, buffer=b"back")]

    handler.handle_packet(
        data_packet(PortForwardData(77, source_to_destination=False, closed=True)),
        connection,
    )
    assert network.closed == [21]
    assert connection.packets == []


def test_destination_response_error_closes_source_fd():
    network, _, handler = make()
    source = SocketEndpoint(port=8080)
    handler.create_source(
        PortForwardSourceRequest(destination=SocketEndpoint(port=80), source=source),
        False,
        -1,
        -1,
    )
    listen_fd = next(iter(network.listening[source]))
    network.pending[listen_fd] = [21]
    handler.update()
    handler.handle_packet(
        Packet(
            TerminalPacketType.PORT_FORWARD_DESTINATION_RESPONSE,
            PortForwardDestinationResponse(client_fd=21, error="refused").encode(),
        ),
        FakeConnection(),
    )
    assert network.closed == [21]


def test_source_with_name_request_is_rejected():
    network, _, handler = make()
    response, name = handler.create_source(
        PortForwardSourceRequest(
            destination=SocketEndpoint(port=80), source=SocketEndpoint(port=8080)
        ),
        True,
        -1,
        -1,
    )
    assert response.error == (
        "Do not set a source when forwarding named pipes with environment variables"
    )
    assert name is None
    assert network.listening == {}


def test_pipe_source_without_name_is_fatal():
    _, _, handler = make()
    with pytest.raises(RuntimeError):
        handler.create_source(
            PortForwardSourceRequest(destination=SocketEndpoint(name="/tmp/x")),
            False,
            os.getuid(),
            os.getgid(),
        )


def test_pipe_source_creates_private_path():
    _, pipe, handler = make()
    response, name = handler.create_source(
        PortForwardSourceRequest(
            destination=SocketEndpoint(name="/tmp/agent.sock"),
            environment_variable="SSH_AUTH_SOCK",
        ),
        True,
        os.getuid(),
        os.getgid(),
    )
    try:
        assert response.error is None
        assert name.endswith("/sock")
        assert SocketEndpoint(name=name) in pipe.listening
        directory = os.path.dirname(name)
        assert os.path.basename(directory).startswith("et_forward_sock_")
        assert stat.S_IMODE(os.stat(directory).st_mode) == 0o700
        assert stat.S_IMODE(os.stat(name).st_mode) == 0o700
    finally:
        shutil.rmtree(os.path.dirname(name))


def test_unhandled_packet_type_raises():
    _, _, handler = make()
    with pytest.raises(ValueError):
        handler.handle_packet(
            Packet(TerminalPacketType.KEEP_ALIVE, b""), FakeConnection()
        )


def test_unknown_source_socket_ids_are_ignored():
    network, _, handler = make()
    handler.send_data_to_source_on_socket(5, b"x")
    handler.close_source_socket_id(5)
    handler.close_source_fd(5)
    handler.add_source_socket_id(5, 6)
    assert network.written == {}
    assert network.closed == []
    assert handler.update() == ([], [])