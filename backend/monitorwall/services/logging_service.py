"""Logging setup and the outbound API call log."""

import csv
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Base logs directory
LOGS_BASE_DIR = Path(__file__).parent.parent.parent / "logs"


def configure_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    """Apply the logging section of the configuration to the root logger."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO),
                        format=fmt or DEFAULT_LOG_FORMAT, force=True)
    logger.debug(f"Logging configured at {level.upper()}")


@dataclass
class ApiCallLogEntry:
    """One outbound source adapter call."""
    timestamp: datetime
    source: str
    outcome: str  # success, failure
    duration_ms: float
    error: Optional[str] = None


class ApiCallLog:
    """Appends adapter calls to a CSV file when API call logging is enabled."""

    FILE_NAME = "api_calls.csv"

    def __init__(self, enabled: bool = False, log_dir: Optional[Path] = None):
        """Initialize the API call log.

        Args:
            enabled: Whether calls are written at all
            log_dir: Directory for the CSV file (defaults to backend/logs)
        """
        self.enabled = enabled
        self.log_dir = Path(log_dir) if log_dir is not None else LOGS_BASE_DIR
        self.log_file = self.log_dir / self.FILE_NAME

    def record(self, entry: ApiCallLogEntry) -> None:
        """Append one entry; failures to write are logged, not raised."""
        if not self.enabled:
            return

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            write_header = not self.log_file.exists()

            with open(self.log_file, 'a', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)

                if write_header:
                    writer.writerow(['timestamp', 'source', 'outcome', 'duration_ms', 'error'])

                writer.writerow([
                    entry.timestamp.isoformat(),
                    entry.source,
                    entry.outcome,
                    f"{entry.duration_ms:.1f}",
                    entry.error or "",
                ])

        except OSError as e:
            logger.error(f"Failed to write API call log entry for {entry.source}: {e}")
