"""
Terminal logging for the proctor service

Colored output for requests, proctoring lifecycle lines and errors.
Lines produced by securequiz.proctor.utils.logging start with [PROCTOR]
and are highlighted by severity of the event they carry.
"""
import logging
import sys
from datetime import datetime
from typing import Optional


# ============================================================================
# ANSI Colors for Terminal
# ============================================================================

class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    BG_RED = "\033[41m"


# Proctor event types that get their own marker
EVENT_MARKERS = {
    "violation_confirmed": (Colors.YELLOW, "!"),
    "transition": (Colors.CYAN, ">"),
    "critical_auto_submit": (Colors.RED, "#"),
    "critical_locked": (Colors.RED, "#"),
    "session_end": (Colors.GREEN, "="),
}


# ============================================================================
# Logger Configuration
# ============================================================================

class ColoredFormatter(logging.Formatter):
    """Colored formatter with markers for [PROCTOR] event lines."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.DIM + Colors.WHITE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BG_RED + Colors.WHITE,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        text = record.getMessage()

        line = (
            f"{Colors.DIM}{timestamp}{Colors.RESET} "
            f"{color}{record.levelname:8}{Colors.RESET} "
            f"[{Colors.CYAN}{record.name}{Colors.RESET}] {text}"
        )

        marker = self._marker(text)
        if marker:
            marker_color, symbol = marker
            line = f"{marker_color}{symbol}{Colors.RESET} {line}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line

    @staticmethod
    def _marker(text: str):
        if not text.startswith("[PROCTOR]"):
            return None
        for event_type, marker in EVENT_MARKERS.items():
            if f"event={event_type}" in text:
                return marker
        return Colors.MAGENTA, "*"


def setup_logger(name: str = "securequiz", level: int = logging.DEBUG) -> logging.Logger:
    """Route a logger tree through the colored formatter."""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter())
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


api_logger = setup_logger("securequiz.api", logging.INFO)


def log_error(error_type: str, message: str, session_id: Optional[str] = None):
    """Log a request-level error, tagged with the session when known."""
    suffix = f" (session={session_id})" if session_id else ""
    api_logger.error(f"{error_type}: {message}{suffix}")


def log_startup(service_name: str, port: int, settings=None):
    """Print the startup banner and the proctoring configuration."""
    print(f"\n{Colors.BOLD}{Colors.GREEN}{'='*60}{Colors.RESET}")
    print(f"{Colors.BOLD}{Colors.GREEN}  {service_name} STARTED{Colors.RESET}")
    print(f"{Colors.BOLD}{Colors.GREEN}{'='*60}{Colors.RESET}")
    print(f"  Running on: {Colors.CYAN}http://localhost:{port}{Colors.RESET}")

    if settings is not None:
        print(f"\n{Colors.DIM}Configuration:{Colors.RESET}")
        print(f"  LMS: {Colors.CYAN}{settings.LMS_BASE_URL}{Colors.RESET}")
        print(f"  Corroboration window: {Colors.CYAN}{settings.CORROBORATION_WINDOW}s{Colors.RESET}")
        print(f"  Startup grace: {Colors.CYAN}{settings.STARTUP_GRACE_PERIOD}s{Colors.RESET}")
        print(f"  Max tab switches: {Colors.CYAN}{settings.MAX_TAB_SWITCHES}{Colors.RESET}")
        print(f"  Penalty: {Colors.CYAN}{settings.PENALTY_DURATION}s{Colors.RESET}")
        print(f"  Debug Mode: {Colors.CYAN}{settings.DEBUG}{Colors.RESET}")

    print(f"\n{Colors.DIM}Waiting for sessions...{Colors.RESET}\n")
