"""Report writing for lspreport."""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from lspreport.models import Snapshot

logger = logging.getLogger(__name__)


def build_report(snapshots: Mapping[str, Snapshot]) -> dict[str, dict[str, Any]]:
    """Render snapshots keyed by pid string, preserving their order."""
    return {pid: snapshot.to_json() for pid, snapshot in snapshots.items()}


def write_report(snapshots: Mapping[str, Snapshot], path: Path) -> Path:
    """Write the report as 2-space indented JSON, replacing any existing file."""
    path.write_text(json.dumps(build_report(snapshots), indent=2), encoding="utf-8")
    logger.debug("Wrote %d snapshots to %s", len(snapshots), path)
    return path
