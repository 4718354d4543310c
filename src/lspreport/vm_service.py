"""Minimal Dart VM service protocol client for lspreport."""

import itertools
import json
import logging
from collections.abc import Callable
from typing import Any, Protocol

from websockets.exceptions import WebSocketException
from websockets.sync.client import connect as websocket_connect

from lspreport.errors import VmServiceError

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """The subset of a synchronous websocket connection used by the client."""

    def send(self, message: str) -> None: ...

    def recv(self, timeout: float | None = None) -> str | bytes: ...

    def close(self) -> None: ...


class VmServiceClient:
    """
    JSON-RPC 2.0 client for the Dart VM service.

    Requests are issued one at a time; stream notifications received while
    waiting for a response are ignored. Use as a context manager so the
    connection is always closed.
    """

    def __init__(self, connection: Connection, timeout: float | None = 30.0) -> None:
        """
        Initialize the VmServiceClient.

        Args:
            connection: An open websocket connection.
            timeout: Seconds to wait for each response, None to wait forever.
        """
        self._connection = connection
        self._timeout = timeout
        self._ids = itertools.count(1)
        self._disposed = False

    @classmethod
    def connect(
        cls,
        uri: str,
        timeout: float | None = 30.0,
        connection_factory: Callable[..., Connection] | None = None,
    ) -> "VmServiceClient":
        """Open a websocket to uri and wrap it in a client."""
        factory = connection_factory or websocket_connect
        try:
            connection = factory(uri, open_timeout=timeout, max_size=None)
        except (OSError, ValueError, WebSocketException) as exc:
            raise VmServiceError("connect", f"{uri}: {exc}") from exc
        return cls(connection, timeout=timeout)

    @property
    def is_disposed(self) -> bool:
        """Check if the connection has been released."""
        return self._disposed

    def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Send one request and wait for its result.

        Raises:
            VmServiceError: On transport failure, timeout, an error response
                or a Sentinel result.
        """
        if self._disposed:
            raise VmServiceError(method, "client disposed")
        request_id = str(next(self._ids))
        request = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or {}}
        try:
            self._connection.send(json.dumps(request))
            while True:
                message = json.loads(self._connection.recv(timeout=self._timeout))
                if isinstance(message, dict) and message.get("id") == request_id:
                    break
                logger.debug("Ignoring message while waiting for %s: %.80s", method, message)
        except TimeoutError as exc:
            raise VmServiceError(method, "timed out") from exc
        except json.JSONDecodeError as exc:
            raise VmServiceError(method, f"malformed response: {exc}") from exc
        except (OSError, WebSocketException) as exc:
            raise VmServiceError(method, str(exc) or type(exc).__name__) from exc

        error = message.get("error")
        if error is not None:
            raise VmServiceError(method, error.get("message", "unknown error"), error.get("code"))
        result = message.get("result")
        if not isinstance(result, dict):
            raise VmServiceError(method, "response without result")
        if result.get("type") == "Sentinel":
            raise VmServiceError(method, f"sentinel {result.get('kind')}: {result.get('valueAsString')}")
        return result

    def get_vm(self) -> dict[str, Any]:
        """Fetch the VM descriptor, including its isolate references."""
        return self.call("getVM")

    def get_process_memory_usage(self) -> dict[str, Any]:
        """Fetch the process-wide memory breakdown tree."""
        return self.call("getProcessMemoryUsage")

    def get_memory_usage(self, isolate_id: str) -> dict[str, Any]:
        """Fetch heap and external usage for one isolate."""
        return self.call("getMemoryUsage", {"isolateId": isolate_id})

    def get_allocation_profile(self, isolate_id: str) -> dict[str, Any]:
        """
        Fetch per-class allocation statistics for one isolate.

        The profile is read as is; no garbage collection is requested.
        """
        return self.call("getAllocationProfile", {"isolateId": isolate_id})

    def dispose(self) -> None:
        """Close the connection. Further calls are no-ops."""
        if self._disposed:
            return
        self._disposed = True
        self._connection.close()

    def __enter__(self) -> "VmServiceClient":
        """Use the client as a context manager that disposes on exit."""
        return self

    def __exit__(self, *exc_info: object) -> None:
        """Dispose the connection, letting any exception propagate."""
        self.dispose()
