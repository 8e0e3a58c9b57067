# =============================================================================
# finance_core/logging/__init__.py
# Centralized Logging Configuration
# =============================================================================

from .config import setup_logging, setup_logging_from_settings, get_logger, LogContext

__all__ = ["setup_logging", "setup_logging_from_settings", "get_logger", "LogContext"]
