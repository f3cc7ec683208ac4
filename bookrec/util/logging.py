"""
Structured operation logging for the index build and query pipeline.
"""

import logging
import os
from typing import Any, Dict, List


class StructuredLogger:
    """Structured logger for store, build and query operations."""

    def __init__(self, name: str = "bookrec"):
        self.logger = logging.getLogger(name)
        debug = os.getenv("DEBUG", "false").lower() == "true"
        self.logger.setLevel(logging.DEBUG if debug else logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error"):
            self.logger.error(message)
        elif status in ("retry", "skipped", "cancelled"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_store_operation(self, operation: str, key: str, status: str = "success", details: Dict[str, Any] = None):
        """Log a key-value store operation."""
        log_details = {"key": key}
        if details:
            log_details.update(details)

        self.log_operation(f"store.{operation}", status, log_details)

    def log_load_summary(self, path: str, loaded: int, failed: int = 0):
        """Log the outcome of reading records from disk."""
        status = "success" if failed == 0 else "partial"
        self.log_operation("loader.load", status, {"path": path, "loaded": loaded, "failed": failed})

    def log_build_summary(self, index_name: str, written: int, failed: int, duration_ms: float, cancelled: bool = False):
        """Log the outcome of an index build."""
        if cancelled:
            status = "cancelled"
        elif failed:
            status = "partial"
        else:
            status = "success"

        self.log_operation("index.build", status, {
            "index": index_name,
            "written": written,
            "failed": failed,
            "duration_ms": round(duration_ms, 2),
        })

    def log_query(self, mode: str, target: str, k: int, returned: int, status: str = "success"):
        """Log a query against the index."""
        self.log_operation(f"query.{mode}", status, {"target": target, "k": k, "returned": returned})

    def log_build_errors(self, errors: List[str], limit: int = 10):
        """Log per-entry build errors, truncated to keep output readable."""
        for error in errors[:limit]:
            self.logger.error(f"Build entry failed: {error}")
        if len(errors) > limit:
            self.logger.error(f"... {len(errors) - limit} more build errors suppressed")

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
