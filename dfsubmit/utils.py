"""
Utility functions for dfsubmit.

Includes logging setup and console output helpers.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler


# Global console for pretty output
console = Console()


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "pretty",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Set up logging for dfsubmit.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "structured" (JSON) or "pretty" (human-readable)
        log_file: Optional path to also log to (always structured)

    Returns:
        Configured "dfsubmit" logger
    """
    logger = logging.getLogger("dfsubmit")
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers = []  # Clear existing handlers

    if log_format == "pretty":
        console_handler: logging.Handler = RichHandler(
            console=Console(stderr=True), rich_tracebacks=True, show_time=False
        )
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(StructuredFormatter())
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    return logger


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields if present
        if hasattr(record, "run_id"):
            log_data["run_id"] = record.run_id
        if hasattr(record, "step"):
            log_data["step"] = record.step

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def render_model(model: Any) -> str:
    """Textual form of a portable model for dry-run output."""
    if hasattr(model, "to_text"):
        return model.to_text()
    if isinstance(model, (dict, list)):
        return json.dumps(model, indent=2, sort_keys=True, default=str)
    return str(model)


def print_job(job: Any) -> None:
    """Print a translated job description to the console."""
    if isinstance(job, (dict, list)):
        console.print_json(data=job, default=str)
    else:
        console.print(job, markup=False)


def print_banner(title: str) -> None:
    """Print a banner to console."""
    console.rule(f"[bold blue]{title}[/bold blue]")

