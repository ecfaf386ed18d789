"""
Centralized Logging Configuration for Personal Primer

All Python logging goes to logs/primer/system.log (rotating) and, optionally,
to stdout.

Usage in any module:
    import logging
    from primer.core.logging_config import setup_logging

    # Call once at process startup
    setup_logging()

    logger = logging.getLogger(__name__)
    logger.info("My message")

Debugging:
    tail -f logs/primer/system.log
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from primer.core.config import get_settings

# =============================================================================
# Configuration
# =============================================================================

LOG_DIR = Path("logs/primer")
SYSTEM_LOG_FILE = LOG_DIR / "system.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB per file
BACKUP_COUNT = 5

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
    service_name: str = "primer",
) -> None:
    """
    Configure unified logging.

    Should be called ONCE at the start of a process (script or service).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to the LOG_LEVEL setting.
        log_to_console: Whether to also log to stdout
        log_to_file: Whether to log to system.log
        service_name: Identifier written in the startup marker
    """
    global _logging_configured, _file_handler

    if _logging_configured:
        return

    if level is None:
        level = get_settings().log_level or DEFAULT_LOG_LEVEL
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
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    _logging_configured = True

    logger = logging.getLogger(service_name)
    logger.info("=" * 60)
    logger.info(f"LOGGING INITIALIZED - {service_name.upper()}")
    if log_to_file:
        logger.info(f"Log file: {SYSTEM_LOG_FILE.absolute()}")
    logger.info(f"Log level: {level.upper()}")
    logger.info("=" * 60)


# =============================================================================
# Convenience Functions
# =============================================================================


def log_stage(
    logger: logging.Logger,
    trace_id: str,
    stage: str,
    status: str,
    elapsed_ms: Optional[float] = None,
):
    """Log a pipeline stage transition with standard format."""
    elapsed = f" | elapsed={elapsed_ms:.0f}ms" if elapsed_ms else ""
    logger.info(f"[{trace_id}] STAGE | {stage} | {status}{elapsed}")


def log_llm_call(
    logger: logging.Logger,
    trace_id: str,
    role: str,
    elapsed_ms: Optional[float] = None,
):
    """Log a generation call with standard format."""
    elapsed = f" | elapsed={elapsed_ms:.0f}ms" if elapsed_ms else ""
    logger.info(f"[{trace_id}] LLM | {role}{elapsed}")


def log_resolution(
    logger: logging.Logger,
    trace_id: str,
    artifact_type: str,
    attempt: int,
    status: str,
):
    """Log one link-resolution attempt with standard format."""
    logger.info(f"[{trace_id}] RESOLVE | {artifact_type} | attempt={attempt} | {status}")
