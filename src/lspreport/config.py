"""Run configuration for lspreport."""

from dataclasses import dataclass
from pathlib import Path

TARGET_FILTER = "dart language-server"
COMPANION_FILTER = "dart development-service"
REPORT_FILENAME = "lsp-report.json"


@dataclass(slots=True, frozen=True)
class CollectorConfig:
    """Settings for one collection run."""

    target_filter: str = TARGET_FILTER
    companion_filter: str = COMPANION_FILTER
    max_attempts: int = 3
    retry_delay: float = 5.0  # Seconds between resolution attempts
    request_timeout: float | None = 30.0  # Seconds per VM service call
    min_bytes: int = 1024  # Smallest allocation profile entry kept
    output: Path = Path(REPORT_FILENAME)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must not be negative")
        if self.min_bytes < 0:
            raise ValueError("min_bytes must not be negative")
