"""
Structured logging configuration with audit trail support.

This module provides JSON logging for circulation events, background
jobs and request performance, with request context preserved on every
record.
"""

import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from pathlib import Path

from pythonjsonlogger import jsonlogger


class RequestContextFilter(logging.Filter):
    """Add request context to log records."""

    def filter(self, record):
        if not hasattr(record, 'event_type'):
            record.event_type = 'application'
        if not hasattr(record, 'request_id'):
            record.request_id = None
        if not hasattr(record, 'user_id'):
            record.user_id = None
        if not hasattr(record, 'client_ip'):
            record.client_ip = None

        return True


class PerformanceContextFilter(logging.Filter):
    """Add performance monitoring context to log records."""

    def filter(self, record):
        if not hasattr(record, 'response_time'):
            record.response_time = None
        if not hasattr(record, 'status_code'):
            record.status_code = None
        if not hasattr(record, 'endpoint'):
            record.endpoint = None

        return True


class CustomJSONFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with request, audit and job context."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')

        log_record['app_name'] = 'library-circulation-api'
        log_record['environment'] = os.getenv('ENVIRONMENT', 'development')
        log_record['version'] = os.getenv('APP_VERSION', '1.0.0')

        log_record['level'] = record.levelname

        context_fields = [
            'event_type', 'user_id', 'client_ip', 'request_id',
            'endpoint', 'method', 'user_agent'
        ]
        for field in context_fields:
            if hasattr(record, field) and getattr(record, field) is not None:
                log_record[field] = getattr(record, field)

        performance_fields = ['response_time', 'status_code']
        for field in performance_fields:
            if hasattr(record, field) and getattr(record, field) is not None:
                log_record[field] = getattr(record, field)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_json: bool = True
) -> None:
    """Setup logging handlers for the application loggers."""

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

    if enable_json:
        formatter = CustomJSONFormatter(
            fmt='%(timestamp)s %(level)s %(name)s %(message)s',
            json_default=_json_default
        )
    else:
        formatter = logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(RequestContextFilter())
    console_handler.addFilter(PerformanceContextFilter())
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(RequestContextFilter())
        file_handler.addFilter(PerformanceContextFilter())
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        handlers=handlers,
        force=True
    )

    for logger_name in ('app', 'performance', 'audit', 'database', 'jobs', 'notifications'):
        logger = logging.getLogger(logger_name)
        logger.setLevel(getattr(logging, log_level.upper()))
        logger.propagate = False
        logger.handlers.clear()

        for handler in handlers:
            logger.addHandler(handler)


def _json_default(value: Any):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


app_logger = logging.getLogger('app')
performance_logger = logging.getLogger('performance')
audit_logger = logging.getLogger('audit')
database_logger = logging.getLogger('database')
jobs_logger = logging.getLogger('jobs')
notifications_logger = logging.getLogger('notifications')


class PerformanceLogger:
    """Specialized logger for performance monitoring."""

    def __init__(self):
        self.logger = performance_logger

    def log_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        response_time: float,
        user_id: Optional[str],
        client_ip: str,
        request_id: str
    ):
        """Log request performance metrics."""
        self.logger.info(
            f"{method} {endpoint} - {status_code} - {response_time:.3f}s",
            extra={
                'event_type': 'api_request',
                'method': method,
                'endpoint': endpoint,
                'status_code': status_code,
                'response_time': response_time,
                'user_id': user_id,
                'client_ip': client_ip,
                'request_id': request_id
            }
        )


class AuditLogger:
    """Specialized logger for circulation audit trails."""

    def __init__(self):
        self.logger = audit_logger

    def log_borrowing_operation(
        self,
        operation: str,
        borrowing_id: Optional[int],
        user_id: Optional[int],
        details: Optional[Dict[str, Any]] = None
    ):
        """Log a state change on a borrowing record."""
        self.logger.info(
            f"Borrowing operation: {operation} {borrowing_id}",
            extra={
                'event_type': 'borrowing_operation',
                'operation': operation,
                'borrowing_id': borrowing_id,
                'user_id': user_id,
                'details': details or {}
            }
        )

    def log_fine_operation(
        self,
        operation: str,
        fine_id: Optional[int],
        user_id: Optional[int],
        details: Optional[Dict[str, Any]] = None
    ):
        """Log a state change on a fine record."""
        self.logger.info(
            f"Fine operation: {operation} {fine_id}",
            extra={
                'event_type': 'fine_operation',
                'operation': operation,
                'fine_id': fine_id,
                'user_id': user_id,
                'details': details or {}
            }
        )

    def log_data_modification(
        self,
        user_id: Optional[int],
        resource_type: str,
        resource_id: Optional[int],
        action: str,
        changes: Dict[str, Any]
    ):
        """Log data modification events."""
        self.logger.info(
            f"Data modification: {action} {resource_type} {resource_id}",
            extra={
                'event_type': 'data_modification',
                'user_id': user_id,
                'resource_type': resource_type,
                'resource_id': resource_id,
                'action': action,
                'changes': changes
            }
        )


performance_event_logger = PerformanceLogger()
audit_event_logger = AuditLogger()


def generate_request_id() -> str:
    """Generate unique request ID for tracing."""
    return str(uuid.uuid4())


def get_client_ip(request) -> str:
    """Extract client IP from request with proxy support."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return getattr(request.client, "host", "unknown")


# Initialize logging on module import
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE")
enable_json = os.getenv("LOG_FORMAT", "json").lower() == "json"

setup_logging(
    log_level=log_level,
    log_file=log_file,
    enable_json=enable_json
)
