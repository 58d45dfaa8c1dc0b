"""
Centralized Logging Configuration for the Navigator

All Python logging from the orchestrator, the search cascade and the HTTP
service goes to one rotating file plus the console:

    logs/navigator/system.log

Usage in any module:
    from libs.core.logging_config import setup_logging, get_logger

    # Call once at service startup
    setup_logging()

    # Get a logger for your module
    logger = get_logger(__name__)
    logger.info("My message")

Debugging:
    # Watch all activity in real-time:
    tail -f logs/navigator/system.log

    # Only the search cascade:
    tail -f logs/navigator/system.log | grep "\\[search\\]"
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# =============================================================================
# Configuration
# =============================================================================

LOG_DIR = Path("logs/navigator")
SYSTEM_LOG_FILE = LOG_DIR / "system.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB per file
BACKUP_COUNT = 5

# Default log level (can be overridden by LOG_LEVEL env var)
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)-20s | %(message)s"
CONSOLE_DATE_FORMAT = "%H:%M:%S"

# =============================================================================
# Global State
# =============================================================================

_logging_configured = False
_file_handler: Optional[RotatingFileHandler] = None


# =============================================================================
# Setup Functions
# =============================================================================


def setup_logging(
    level: Optional[str] = None,
    log_to_console: bool = True,
    log_to_file: bool = True,
    service_name: str = "navigator",
) -> None:
    """
    Configure unified logging for the navigator service.

    This should be called ONCE at service startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL env var or INFO.
        log_to_console: Whether to also log to stdout (default True)
        log_to_file: Whether to log to system.log file (default True)
        service_name: Service identifier for log context
    """
    global _logging_configured, _file_handler

    if _logging_configured:
        return

    if level is None:
        level = os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL)
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove any existing handlers (prevents duplicates)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if log_to_file:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        _file_handler = RotatingFileHandler(
            SYSTEM_LOG_FILE,
            maxBytes=MAX_LOG_SIZE,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        _file_handler.setLevel(log_level)
        _file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        root_logger.addHandler(_file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, CONSOLE_DATE_FORMAT))
        root_logger.addHandler(console_handler)

    # === Reduce noise from chatty libraries ===
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("playwright").setLevel(logging.WARNING)

    _logging_configured = True

    logger = logging.getLogger(service_name)
    logger.info("=" * 60)
    logger.info(f"LOGGING INITIALIZED - {service_name.upper()}")
    if log_to_file:
        logger.info(f"Log file: {SYSTEM_LOG_FILE.absolute()}")
    logger.info(f"Log level: {level.upper()}")
    logger.info("=" * 60)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Args:
        name: Usually __name__ to get the module's dotted path

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


# =============================================================================
# Convenience Functions
# =============================================================================


def log_turn_start(logger: logging.Logger, conversation_id: str, text: str):
    """Log the start of a user turn with standard format."""
    logger.info(f"[{conversation_id}] TURN START | text={text[:100]}")


def log_turn_end(logger: logging.Logger, conversation_id: str, outcome: str, elapsed_ms: float):
    """Log the end of a user turn with standard format."""
    logger.info(f"[{conversation_id}] TURN END | {outcome} | elapsed={elapsed_ms:.0f}ms")


def log_directive(logger: logging.Logger, conversation_id: str, kind: str, value: str, status: str):
    """Log one directive dispatch with standard format."""
    logger.info(f"[{conversation_id}] DIRECTIVE | {kind} | {value[:80]} | {status}")


# =============================================================================
# Log File Utilities
# =============================================================================


def tail_logs(n: int = 50) -> str:
    """Get the last N lines from the system log."""
    if not SYSTEM_LOG_FILE.exists():
        return "No log file found"

    try:
        with open(SYSTEM_LOG_FILE, "r", encoding="utf-8") as f:
            lines = f.readlines()
            return "".join(lines[-n:])
    except OSError as e:
        return f"Error reading log: {e}"


def get_log_files() -> dict:
    """Get paths, sizes and modification times of all log files."""
    result = {}

    if LOG_DIR.exists():
        for log_file in LOG_DIR.glob("*.log*"):
            stat = log_file.stat()
            result[str(log_file)] = {
                "size_kb": stat.st_size / 1024,
                "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(),
            }

    return result
