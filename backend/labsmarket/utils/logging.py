"""
Production logging utility for structured JSON logging.

Provides event-specific logging functions with mandatory fields:
- timestamp (ISO8601)
- level
- service
- event

Optional fields (included when applicable):
- user_id
- provider
- key
- duration_ms

Secrets never go through these helpers; access keys are masked by the
caller before logging.

Usage:
    from labsmarket.utils.logging import configure_logging, log_upload_completed

    configure_logging('labsmarket-api', 'INFO')
    log_upload_completed(logger, provider='OORT', key='uploads/1-a.csv', duration_ms=812.4)
"""
import logging
import sys
from typing import Optional, Dict, Any
from pythonjsonlogger import jsonlogger


class StructuredLogger:
    """Structured JSON logger with mandatory fields."""

    _service_name = None
    _configured = False

    @classmethod
    def configure(cls, service_name: str, log_level: str = "INFO"):
        """
        Configure structured JSON logging for the application.

        Args:
            service_name: Service identifier (labsmarket-api or labsmarket-cli)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        if cls._configured:
            return  # Already configured

        cls._service_name = service_name

        # Remove default handlers
        root_logger = logging.getLogger()
        root_logger.handlers = []

        formatter = jsonlogger.JsonFormatter(
            '%(timestamp)s %(level)s %(name)s %(message)s',
            timestamp=True,
            json_ensure_ascii=False
        )

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)

        root_logger.addHandler(handler)
        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        # botocore is chatty at INFO
        logging.getLogger("botocore").setLevel(logging.WARNING)

        class ServiceFilter(logging.Filter):
            def filter(self, record):
                record.service = cls._service_name
                return True

        handler.addFilter(ServiceFilter())
        cls._configured = True


def _build_log_extra(
    event: str,
    user_id: Optional[str] = None,
    provider: Optional[str] = None,
    key: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Build extra fields for structured logging.

    Args:
        event: Event name (mandatory)
        user_id: Optional user ID
        provider: Optional storage provider (AWS or OORT)
        key: Optional object key
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields

    Returns:
        Dictionary of extra fields
    """
    extra = {
        "event": event,
        **kwargs
    }

    if user_id:
        extra["user_id"] = user_id
    if provider:
        extra["provider"] = provider
    if key:
        extra["key"] = key
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)

    return extra


def _log_error(logger: logging.Logger, message: str, extra: Dict[str, Any], include_traceback: bool):
    if include_traceback:
        exc_info = sys.exc_info()
        if exc_info[0] is not None:
            logger.error(message, extra=extra, exc_info=exc_info)
            return
    logger.error(message, extra=extra)


# Upload event functions

def log_upload_started(
    logger: logging.Logger,
    provider: str,
    key: str,
    file_size: int,
    simulated: bool = False,
    **kwargs
):
    """Log the start of an upload."""
    extra = _build_log_extra(
        event="upload_started",
        provider=provider,
        key=key,
        file_size=file_size,
        simulated=simulated,
        **kwargs
    )
    mode = " (simulated)" if simulated else ""
    logger.info(f"Upload started{mode}: {key}, Size: {file_size} bytes", extra=extra)


def log_upload_completed(
    logger: logging.Logger,
    provider: str,
    key: str,
    duration_ms: Optional[float] = None,
    strategy: Optional[str] = None,
    verified: Optional[bool] = None,
    **kwargs
):
    """
    Log upload completion event.

    Args:
        logger: Logger instance
        provider: Storage provider (required)
        key: Object key (required)
        duration_ms: Optional duration in milliseconds
        strategy: Delivery strategy that succeeded (AWS only)
        verified: Result of the post-upload access check (OORT only)
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="upload_completed",
        provider=provider,
        key=key,
        duration_ms=duration_ms,
        **kwargs
    )
    if strategy:
        extra["strategy"] = strategy
    if verified is not None:
        extra["verified"] = verified

    logger.info(f"Upload completed: {key}", extra=extra)


def log_upload_failed(
    logger: logging.Logger,
    provider: str,
    error: str,
    key: Optional[str] = None,
    duration_ms: Optional[float] = None,
    category: Optional[str] = None,
    include_traceback: bool = False,
    **kwargs
):
    """
    Log upload failure event.

    Args:
        logger: Logger instance
        provider: Storage provider (required)
        error: Error message (required)
        key: Optional object key
        duration_ms: Optional duration in milliseconds
        category: Error category (configuration, connectivity, transfer)
        include_traceback: Whether to include stack trace
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="upload_failed",
        provider=provider,
        key=key,
        duration_ms=duration_ms,
        error=str(error),
        **kwargs
    )
    if category:
        extra["category"] = category

    _log_error(logger, f"Upload failed: {error}", extra, include_traceback)


def log_strategy_failed(
    logger: logging.Logger,
    provider: str,
    strategy: str,
    error: str,
    key: Optional[str] = None,
    **kwargs
):
    """Log a failed delivery strategy. The orchestrator moves on to the next one."""
    extra = _build_log_extra(
        event="upload_strategy_failed",
        provider=provider,
        key=key,
        strategy=strategy,
        error=str(error),
        **kwargs
    )
    logger.warning(f"Upload strategy {strategy} failed: {error}", extra=extra)


# Connectivity event functions

def log_connectivity_probe(
    logger: logging.Logger,
    provider: str,
    success: bool,
    message: str,
    duration_ms: Optional[float] = None,
    error_category: Optional[str] = None,
    **kwargs
):
    """Log the result of a connectivity probe."""
    extra = _build_log_extra(
        event="connectivity_probe",
        provider=provider,
        duration_ms=duration_ms,
        success=success,
        **kwargs
    )
    if error_category:
        extra["error_category"] = error_category

    if success:
        logger.info(f"Connectivity probe passed: {message}", extra=extra)
    else:
        logger.warning(f"Connectivity probe failed: {message}", extra=extra)


# Tracking event functions

def log_upload_tracked(
    logger: logging.Logger,
    user_id: str,
    provider: str,
    points: int,
    upload_id: Optional[str] = None,
    persisted: bool = True,
    **kwargs
):
    """Log a recorded upload and the points it earned."""
    extra = _build_log_extra(
        event="upload_tracked",
        user_id=user_id,
        provider=provider,
        points=points,
        persisted=persisted,
        **kwargs
    )
    if upload_id:
        extra["upload_id"] = upload_id

    logger.info(f"Upload tracked for user {user_id}: {points} points", extra=extra)


def log_tracking_failed(
    logger: logging.Logger,
    user_id: str,
    provider: str,
    error: str,
    include_traceback: bool = True,
    **kwargs
):
    """Log a tracking failure. The upload itself stays successful."""
    extra = _build_log_extra(
        event="tracking_failed",
        user_id=user_id,
        provider=provider,
        error=str(error),
        **kwargs
    )
    _log_error(logger, f"Error tracking upload: {error}", extra, include_traceback)


# Convenience alias
def configure_logging(service_name: str, log_level: str = "INFO"):
    """Configure logging (alias for StructuredLogger.configure)."""
    StructuredLogger.configure(service_name, log_level)
