"""Exception hierarchy for lspreport."""

from collections.abc import Sequence


def prefix_lines(text: str, prefix: str) -> str:
    """Prefix every line of text with the given marker."""
    return "\n".join(f"{prefix}{line}" for line in text.split("\n"))


class LspReportError(Exception):
    """Base class for all lspreport errors."""


class ExternalToolError(LspReportError):
    """
    A required external tool could not be run or exited non-zero.

    Failures that do not come from a subprocess pass a plain description
    instead of the command line.

    This is fatal: without a process or port listing there is nothing to report.
    """

    def __init__(
        self,
        command: Sequence[str],
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
        description: str | None = None,
    ) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        if description is None:
            status = f"failed with {returncode}" if returncode is not None else "could not be run"
            description = f"running {' '.join(self.command)} {status}"
        super().__init__(description)

    def details(self) -> str:
        """Render the failure with captured output, one prefixed line each."""
        return "\n".join(
            [
                str(self),
                prefix_lines(self.stdout, "stdout: "),
                prefix_lines(self.stderr, "stderr: "),
            ]
        )


class RemediationError(LspReportError):
    """Sending the remediation signal to a target process failed."""

    def __init__(self, pid: int, reason: str) -> None:
        self.pid = pid
        super().__init__(f"could not signal {pid}: {reason}")


class EndpointParseError(LspReportError):
    """A companion process does not advertise a usable VM service URI."""

    def __init__(self, command_line: str, reason: str) -> None:
        self.command_line = command_line
        super().__init__(reason)


class SnapshotError(LspReportError):
    """Collecting a snapshot from one endpoint failed."""


class VmServiceError(SnapshotError):
    """A VM service request failed or returned an error response."""

    def __init__(self, method: str, message: str, code: int | None = None) -> None:
        self.method = method
        self.code = code
        suffix = f" (code {code})" if code is not None else ""
        super().__init__(f"{method}: {message}{suffix}")
