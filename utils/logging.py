# CREATE FILE: utils/logging.py

import json
import os
import re
import time
import uuid
import traceback
from datetime import datetime, timezone
from typing import Dict, Any
from contextlib import contextmanager


class StructuredLogger:
    """
    Structured JSON logger shared by the checkout services.

    Every entry is written as a single JSON line on stdout with:
    - service / environment / version base fields
    - request ID tracking
    - timing for requests, operations and outbound calls
    - error context
    """

    def __init__(self, service_name: str, environment: str = None):
        self.service_name = service_name
        self.environment = environment or os.getenv('ENVIRONMENT', 'development')
        self.version = os.getenv('SERVICE_VERSION', '1.0.0')
        self.enable_debug = os.getenv('DEBUG_LOGGING', 'false').lower() == 'true'

        self.base_fields = {
            'service': self.service_name,
            'environment': self.environment,
            'version': self.version,
            'process_id': os.getpid()
        }

    def _create_log_entry(self, level: str, message: str, **kwargs) -> Dict[str, Any]:
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': level.upper(),
            'message': message,
            **self.base_fields
        }

        for key, value in kwargs.items():
            if value is not None:
                entry[key] = value

        return entry

    def _log(self, level: str, message: str, **kwargs):
        """Output structured log entry to stdout"""
        log_entry = self._create_log_entry(level, message, **kwargs)
        # Decimal amounts and datetimes are rendered with str()
        print(json.dumps(log_entry, default=str))

    def debug(self, message: str, **kwargs):
        """Debug level logging (only if debug enabled)"""
        if self.enable_debug:
            self._log('debug', message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log('info', message, **kwargs)

    def warning(self, message: str, error: Exception = None, **kwargs):
        if error:
            kwargs.setdefault('error_type', type(error).__name__)
            kwargs.setdefault('error_message', str(error))
        self._log('warning', message, **kwargs)

    def error(self, message: str, error: Exception = None, **kwargs):
        """Error level logging with optional exception details"""
        error_details = {}
        if error:
            error_details = {
                'error_type': type(error).__name__,
                'error_message': str(error),
                'stack_trace': traceback.format_exc() if self.enable_debug else None
            }

        self._log('error', message, **error_details, **kwargs)

    def request_start(self, request_id: str, endpoint: str, method: str = 'POST', **kwargs):
        self.info(
            f"Request started: {method} {endpoint}",
            action='request_start',
            request_id=request_id,
            endpoint=endpoint,
            method=method,
            **kwargs
        )

    def request_end(self, request_id: str, endpoint: str, duration_ms: float,
                    status_code: int = 200, **kwargs):
        """Log the end of a request with timing"""
        level = 'info' if status_code < 400 else 'warning' if status_code < 500 else 'error'

        self._log(
            level,
            f"Request completed: {endpoint} ({status_code})",
            action='request_end',
            request_id=request_id,
            endpoint=endpoint,
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
            performance_category=self._categorize_performance(duration_ms),
            **kwargs
        )

    def business_event(self, event_type: str, request_id: str = None,
                       amount=None, currency: str = None, **kwargs):
        """Log business events (quotes, applied discounts)"""
        self.info(
            f"Business event: {event_type}",
            action='business_event',
            event_type=event_type,
            request_id=request_id,
            amount=amount,
            currency=currency,
            **kwargs
        )

    def api_call(self, target_service: str, endpoint: str, method: str = 'POST',
                 duration_ms: float = None, status_code: int = None,
                 request_id: str = None, **kwargs):
        """Log outbound API calls to collaborators"""
        level = 'info'
        if status_code and status_code >= 400:
            level = 'warning' if status_code < 500 else 'error'

        self._log(
            level,
            f"API call: {method} {target_service}{endpoint}",
            action='api_call',
            target_service=target_service,
            endpoint=endpoint,
            method=method,
            duration_ms=round(duration_ms, 2) if duration_ms is not None else None,
            status_code=status_code,
            request_id=request_id,
            **kwargs
        )

    def _categorize_performance(self, duration_ms: float) -> str:
        if duration_ms < 100:
            return 'fast'
        elif duration_ms < 500:
            return 'normal'
        elif duration_ms < 2000:
            return 'slow'
        else:
            return 'very_slow'

    @contextmanager
    def request_context(self, request_id: str = None, endpoint: str = None,
                        method: str = 'POST'):
        """Context manager for request logging with automatic timing"""
        request_id = request_id or str(uuid.uuid4())
        start_time = time.time()
        status_code = 200

        try:
            if endpoint:
                self.request_start(request_id, endpoint, method)
            yield request_id
        except Exception as e:
            status_code = getattr(e, 'status_code', 500)
            self.error(f"Request failed: {endpoint}", error=e, request_id=request_id)
            raise
        finally:
            if endpoint:
                duration_ms = (time.time() - start_time) * 1000
                self.request_end(request_id, endpoint, duration_ms, status_code)

    @contextmanager
    def operation_context(self, operation_name: str, request_id: str = None):
        """Context manager for timed operations"""
        start_time = time.time()

        try:
            self.debug(f"Operation started: {operation_name}",
                       action='operation_start',
                       operation=operation_name,
                       request_id=request_id)
            yield
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self.error(f"Operation failed: {operation_name}",
                       error=e,
                       action='operation_error',
                       operation=operation_name,
                       duration_ms=duration_ms,
                       request_id=request_id)
            raise
        else:
            duration_ms = (time.time() - start_time) * 1000
            self.debug(f"Operation completed: {operation_name}",
                       action='operation_end',
                       operation=operation_name,
                       duration_ms=duration_ms,
                       request_id=request_id)


def get_logger(service_name: str) -> StructuredLogger:
    """Get a configured logger for a service"""
    return StructuredLogger(service_name)


def sanitize_pii(data: Any, redact_fields: set = None) -> Any:
    """
    Recursively sanitize PII from data structures before logging.

    Coordinates of a delivery address are treated as PII and redacted.

    Args:
        data: The data to sanitize
        redact_fields: Set of field names to redact (default: common PII fields)

    Returns:
        Sanitized data with PII fields redacted
    """
    if redact_fields is None:
        redact_fields = {
            'email', 'phone', 'password', 'token', 'api_key', 'secret',
            'address', 'street', 'latitude', 'longitude'
        }

    if isinstance(data, dict):
        return {
            key: '[REDACTED]' if key.lower() in redact_fields
            else sanitize_pii(value, redact_fields)
            for key, value in data.items()
        }
    elif isinstance(data, list):
        return [sanitize_pii(item, redact_fields) for item in data]
    elif isinstance(data, str):
        if re.search(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b', data):
            return '[REDACTED_EMAIL]'

        if re.search(r'\b(?:\+?\d{1,3}[-.\s]?)?\(?[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4}\b', data):
            return '[REDACTED_PHONE]'

        return data
    else:
        return data
