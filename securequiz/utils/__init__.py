"""Service utilities"""

from .logging import Colors, ColoredFormatter, log_error, log_startup, setup_logger

__all__ = ["Colors", "ColoredFormatter", "log_error", "log_startup", "setup_logger"]
