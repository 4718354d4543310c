"""Tests for the VM service client."""

import json

import pytest
from fakes import FakeConnection, result, vm_service_handlers

from lspreport.errors import SnapshotError, VmServiceError
from lspreport.vm_service import VmServiceClient


class TestVmServiceClient:
    """Tests for VmServiceClient."""

    def test_call_sends_json_rpc(self):
        """Test requests follow JSON-RPC 2.0 with increasing ids."""
        connection = FakeConnection(vm_service_handlers())
        client = VmServiceClient(connection)

        client.get_vm()
        client.get_memory_usage("isolates/1")

        assert connection.sent == [
            {"jsonrpc": "2.0", "id": "1", "method": "getVM", "params": {}},
            {"jsonrpc": "2.0", "id": "2", "method": "getMemoryUsage", "params": {"isolateId": "isolates/1"}},
        ]

    def test_operations_return_results(self):
        """Test each operation returns the result payload."""
        client = VmServiceClient(FakeConnection(vm_service_handlers()))

        assert client.get_vm()["hostCPU"] == "Intel(R) Xeon(R)"
        assert client.get_process_memory_usage()["type"] == "ProcessMemoryUsage"
        assert client.get_memory_usage("isolates/1")["heapUsage"] == 2048
        assert client.get_allocation_profile("isolates/1")["type"] == "AllocationProfile"

    def test_skips_stream_notifications(self):
        """Test events arriving before the response are ignored."""
        notification = {"jsonrpc": "2.0", "method": "streamNotify", "params": {"streamId": "GC"}}
        client = VmServiceClient(FakeConnection(vm_service_handlers(), notifications=[notification]))

        assert client.get_vm()["type"] == "VM"

    def test_error_response(self):
        """Test an error response raises VmServiceError with its code."""
        client = VmServiceClient(FakeConnection({}))

        with pytest.raises(VmServiceError) as excinfo:
            client.get_vm()

        assert excinfo.value.code == -32601
        assert excinfo.value.method == "getVM"
        assert isinstance(excinfo.value, SnapshotError)

    def test_sentinel_result(self):
        """Test a Sentinel result is treated as an error."""
        sentinel = {"type": "Sentinel", "kind": "Collected", "valueAsString": "<collected>"}
        client = VmServiceClient(FakeConnection({"getMemoryUsage": result(sentinel)}))

        with pytest.raises(VmServiceError, match="Collected"):
            client.get_memory_usage("isolates/9")

    def test_timeout(self):
        """Test a missing response raises VmServiceError."""
        client = VmServiceClient(FakeConnection({"getVM": lambda request: None}), timeout=0.01)

        with pytest.raises(VmServiceError, match="timed out"):
            client.get_vm()

    def test_malformed_response(self):
        """Test non-JSON data raises VmServiceError."""
        client = VmServiceClient(FakeConnection({"getVM": lambda request: "{not json"}))

        with pytest.raises(VmServiceError, match="malformed"):
            client.get_vm()

    def test_response_without_result(self):
        """Test a response carrying neither result nor error."""
        client = VmServiceClient(FakeConnection({"getVM": lambda request: {}}))

        with pytest.raises(VmServiceError):
            client.get_vm()

    def test_connection_failure(self):
        """Test a broken connection raises VmServiceError."""
        connection = FakeConnection(vm_service_handlers())

        def broken_send(message):
            raise ConnectionResetError("reset by peer")

        connection.send = broken_send
        client = VmServiceClient(connection)

        with pytest.raises(VmServiceError, match="reset by peer"):
            client.get_vm()

    def test_dispose_closes_once(self):
        """Test dispose releases the connection exactly once."""
        connection = FakeConnection(vm_service_handlers())
        client = VmServiceClient(connection)

        client.dispose()
        client.dispose()

        assert connection.closed == 1
        assert client.is_disposed

    def test_call_after_dispose(self):
        """Test a disposed client refuses requests."""
        client = VmServiceClient(FakeConnection(vm_service_handlers()))
        client.dispose()

        with pytest.raises(VmServiceError, match="disposed"):
            client.get_vm()

    def test_context_manager_disposes_on_error(self):
        """Test the with block closes the connection when a call fails."""
        connection = FakeConnection({})

        with pytest.raises(VmServiceError):
            with VmServiceClient(connection) as client:
                client.get_vm()

        assert connection.closed == 1

    def test_connect_uses_factory(self):
        """Test connect passes the URI and options to the factory."""
        calls = []

        def factory(uri, **kwargs):
            calls.append((uri, kwargs))
            return FakeConnection(vm_service_handlers())

        client = VmServiceClient.connect("ws://127.0.0.1:9229/abc/ws", timeout=2.0, connection_factory=factory)

        assert calls == [("ws://127.0.0.1:9229/abc/ws", {"open_timeout": 2.0, "max_size": None})]
        assert client.get_vm()["type"] == "VM"

    def test_connect_failure(self):
        """Test a refused connection raises VmServiceError."""

        def factory(uri, **kwargs):
            raise ConnectionRefusedError("refused")

        with pytest.raises(VmServiceError, match="refused"):
            VmServiceClient.connect("ws://127.0.0.1:1/ws", connection_factory=factory)

    def test_connect_value_error(self):
        """Test an unencodable host name raises VmServiceError."""

        def factory(uri, **kwargs):
            raise UnicodeError("label empty or too long")

        with pytest.raises(VmServiceError, match="label empty"):
            VmServiceClient.connect("ws://a..b:9229/ws", connection_factory=factory)

    def test_request_is_serialized_json(self):
        """Test the wire message is a JSON string."""
        sent = []
        connection = FakeConnection(vm_service_handlers())
        original_send = connection.send

        def recording_send(message):
            sent.append(message)
            original_send(message)

        connection.send = recording_send
        VmServiceClient(connection).get_vm()

        assert isinstance(sent[0], str)
        assert json.loads(sent[0])["method"] == "getVM"
