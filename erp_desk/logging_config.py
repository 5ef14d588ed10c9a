"""
Structured logging configuration for the ERP desk client.
"""
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
import json
from typing import Any, Dict


class JSONFormatter(logging.Formatter):
    """Format log records as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        return json.dumps(log_data, default=str)


def setup_logging(
    level: str = "INFO",
    log_file: str = None,
    json_format: bool = False
) -> logging.Logger:
    """
    Set up logging configuration.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        json_format: Use JSON formatting for structured logs

    Returns:
        Configured root logger of the package
    """
    logger = logging.getLogger("erp_desk")
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = None) -> logging.Logger:
    """Get a logger instance."""
    if name:
        return logging.getLogger(f"erp_desk.{name}")
    return logging.getLogger("erp_desk")


def log_store_operation(
    logger: logging.Logger,
    operation: str,
    record_type: str,
    count: int = 1,
    record_name: str = None
):
    """Log a document store round-trip."""
    logger.debug(
        f"Store {operation} | type={record_type} | count={count}",
        extra={"extra_data": {
            "event": "store_operation",
            "operation": operation,
            "record_type": record_type,
            "record_name": record_name,
            "count": count
        }}
    )


def log_reconciliation(
    logger: logging.Logger,
    invoice_number: str,
    old_status: str,
    new_status: str,
    total_paid,
    remaining
):
    """Log an invoice status change driven by its payments."""
    logger.info(
        f"Invoice {invoice_number} reconciled | {old_status} -> {new_status} | paid={total_paid} | remaining={remaining}",
        extra={"extra_data": {
            "event": "invoice_reconciled",
            "invoice_number": invoice_number,
            "old_status": old_status,
            "new_status": new_status,
            "total_paid": str(total_paid),
            "remaining_amount": str(remaining)
        }}
    )


def log_export(
    logger: logging.Logger,
    export_type: str,
    export_format: str,
    row_count: int,
    path: str = None
):
    """Log an export."""
    logger.info(
        f"Exported {row_count} {export_type} rows as {export_format}" + (f" -> {path}" if path else ""),
        extra={"extra_data": {
            "event": "export",
            "export_type": export_type,
            "format": export_format,
            "row_count": row_count,
            "path": path
        }}
    )


def log_api_request(
    logger: logging.Logger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client_ip: str = None
):
    """Log API request."""
    logger.info(
        f"{method} {path} | status={status_code} | time={duration_ms:.0f}ms",
        extra={"extra_data": {
            "event": "api_request",
            "method": method,
            "path": path,
            "status_code": status_code,
            "duration_ms": duration_ms,
            "client_ip": client_ip
        }}
    )


def log_error(
    logger: logging.Logger,
    error: Exception,
    context: str = None,
    extra: Dict[str, Any] = None
):
    """Log an error with context."""
    extra_data = {"event": "error", "error_type": type(error).__name__}
    code = getattr(error, "code", None)
    if code:
        extra_data["error_code"] = code
    if context:
        extra_data["context"] = context
    if extra:
        extra_data.update(extra)

    logger.error(
        f"Error: {error} | context={context or 'none'}",
        exc_info=error,
        extra={"extra_data": extra_data}
    )
