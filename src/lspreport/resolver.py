"""VM service endpoint resolution for lspreport."""

import logging
import time
from collections.abc import Callable, Mapping
from enum import Enum
from urllib.parse import urlsplit, urlunsplit

from lspreport.errors import EndpointParseError, RemediationError
from lspreport.ports import invert_mapping
from lspreport.processes import format_processes

logger = logging.getLogger(__name__)

VM_SERVICE_URI_ARG = "--vm-service-uri="
WEBSOCKET_SCHEMES = {"http": "ws", "https": "wss"}


class ResolutionState(Enum):
    """States of the endpoint resolution loop."""

    RESOLVING = "resolving"
    PARTIALLY_RESOLVED = "partially_resolved"
    RESOLVED = "resolved"
    EXHAUSTED = "exhausted"


def parse_companion_uri(command_line: str) -> str:
    """
    Extract the advertised VM service URI from a companion command line.

    Raises:
        EndpointParseError: If the argument is missing or not a usable URI.
    """
    value = next(
        (arg[len(VM_SERVICE_URI_ARG) :] for arg in command_line.split() if arg.startswith(VM_SERVICE_URI_ARG)),
        None,
    )
    if value is None:
        raise EndpointParseError(command_line, f"no {VM_SERVICE_URI_ARG} argument")
    try:
        parts = urlsplit(value)
        port = parts.port
    except ValueError as exc:
        raise EndpointParseError(command_line, f"invalid URI {value!r}: {exc}") from exc
    if not parts.scheme or not parts.hostname or port is None:
        raise EndpointParseError(command_line, f"invalid URI {value!r}")
    return value


def uri_port(uri: str) -> int:
    """Return the port of an already validated URI."""
    port = urlsplit(uri).port
    if port is None:
        raise ValueError(f"URI without port: {uri}")
    return port


def to_websocket_uri(uri: str) -> str:
    """
    Turn an HTTP VM service URI into its websocket endpoint.

    http://127.0.0.1:9229/abc -> ws://127.0.0.1:9229/abc/ws
    """
    parts = urlsplit(uri)
    scheme = WEBSOCKET_SCHEMES.get(parts.scheme, parts.scheme)
    path = parts.path if parts.path.endswith("/") else parts.path + "/"
    return urlunsplit((scheme, parts.netloc, path + "ws", "", ""))


class EndpointResolver:
    """
    Correlates language-server processes with their VM service endpoints.

    Each attempt refreshes the port listing and the companion processes and
    records every target whose port is advertised by a companion. Targets
    still unresolved are remediated (signaled) and the attempt is retried
    after a delay, up to max_attempts. Endpoints once found are never
    replaced, and unresolved targets are simply absent from the result.
    """

    def __init__(
        self,
        targets: Mapping[int, str],
        *,
        list_ports: Callable[[], dict[int, int]],
        list_companions: Callable[[], dict[int, str]],
        remediate: Callable[[int], None],
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: int = 3,
        retry_delay: float = 5.0,
    ) -> None:
        """
        Initialize the EndpointResolver.

        Args:
            targets: Target pid -> command line.
            list_ports: Returns the current port -> owning pid mapping.
            list_companions: Returns the current companion pid -> command line.
            remediate: Prompts one target pid to start its VM service.
            sleep: Waits between attempts.
            max_attempts: Upper bound on resolution attempts.
            retry_delay: Seconds to wait between attempts.
        """
        self._targets = dict(targets)
        self._list_ports = list_ports
        self._list_companions = list_companions
        self._remediate = remediate
        self._sleep = sleep
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._endpoints: dict[int, str] = {}
        self._attempts = 0
        self._remediations = 0
        self._state = ResolutionState.RESOLVING

    @property
    def state(self) -> ResolutionState:
        """Get the current resolution state."""
        return self._state

    @property
    def endpoints(self) -> dict[int, str]:
        """Get resolved target pid -> websocket URI."""
        return dict(self._endpoints)

    @property
    def unresolved(self) -> set[int]:
        """Get target pids without an endpoint."""
        return set(self._targets) - set(self._endpoints)

    @property
    def attempts(self) -> int:
        """Get the number of attempts performed."""
        return self._attempts

    @property
    def remediations(self) -> int:
        """Get the number of remediation signals requested."""
        return self._remediations

    @property
    def is_finished(self) -> bool:
        """Check if no further attempt will be made."""
        return self._state in (ResolutionState.RESOLVED, ResolutionState.EXHAUSTED)

    def resolve(self) -> dict[int, str]:
        """Run attempts until every target resolves or attempts run out."""
        while not self.is_finished:
            logger.info("Trying to fetch vm-service URIs")
            self.attempt()
            if self._state is ResolutionState.RESOLVED:
                break
            logger.info("-> LSP processes without service URI: %s", sorted(self.unresolved))
            self.remediate_unresolved()
            if self._attempts >= self._max_attempts:
                self._state = ResolutionState.EXHAUSTED
                break
            logger.info("Waiting %ss for DDS to start.", f"{self._retry_delay:g}")
            self._sleep(self._retry_delay)
        return self.endpoints

    def attempt(self) -> ResolutionState:
        """Perform one resolution pass and return the resulting state."""
        if self.is_finished:
            return self._state
        self._state = ResolutionState.RESOLVING
        self._attempts += 1

        logger.info("Finding all open ports")
        port_to_pid = self._list_ports()
        logger.info("-> Ports open by LSP processes:")
        owned = {pid: ports for pid, ports in invert_mapping(port_to_pid).items() if pid in self._targets}
        self._log_table(owned)

        logger.info("Checking for development-service processes")
        companions = self._list_companions()
        self._log_table(companions)

        for command_line in companions.values():
            try:
                uri = parse_companion_uri(command_line)
            except EndpointParseError as exc:
                logger.info("Unable to determine VM Service URI from DDS process: %s (%s)", command_line, exc)
                continue
            target_pid = port_to_pid.get(uri_port(uri))
            if target_pid in self._targets and target_pid not in self._endpoints:
                self._endpoints[target_pid] = to_websocket_uri(uri)

        self._log_table(self._endpoints)
        self._state = ResolutionState.PARTIALLY_RESOLVED if self.unresolved else ResolutionState.RESOLVED
        return self._state

    def remediate_unresolved(self) -> int:
        """Signal every unresolved target and return how many signals succeeded."""
        succeeded = 0
        for pid in sorted(self.unresolved):
            logger.info(" | Sending SIGQUIT to %d in attempt to start vm-service", pid)
            logger.warning(
                " | WARNING: this will damage connection between the editor and LSP server "
                "and you will later need to restart analyzer"
            )
            self._remediations += 1
            try:
                self._remediate(pid)
            except RemediationError as exc:
                logger.info(" | - FAILED (%s)", exc)
                continue
            logger.info(" | - OK")
            succeeded += 1
        return succeeded

    @staticmethod
    def _log_table(processes: Mapping) -> None:
        if processes:
            logger.info(format_processes(processes))
        logger.info("")
