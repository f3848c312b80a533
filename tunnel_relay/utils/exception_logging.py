"""
Utility functions for exception logging and for turning failures into the
diagnostic text returned to relay callers.
"""

import logging
import traceback


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            try:
                return f"<{type(obj).__name__} object (string conversion failed)>"
            except Exception:
                return "<object (all string conversions failed)>"


def _safe_get_exceptions(exception_group) -> list:
    try:
        return list(exception_group.exceptions)
    except Exception:
        return []


def format_exception_details(exception: BaseException) -> str:
    """
    Render the full diagnostic text of an exception: type, message, traceback
    and chained causes. Never raises; falls back to the plain message when the
    traceback cannot be rendered.

    Args:
        exception: The exception to format

    Returns:
        Multi-line diagnostic text
    """
    if exception is None:
        return "None"
    try:
        return "".join(
            traceback.format_exception(
                type(exception), exception, exception.__traceback__
            )
        )
    except Exception:
        return f"{type(exception).__name__}: {_safe_str(exception)}"


def format_exception_message(exception: BaseException) -> str:
    """
    Format a one-line exception summary, including sub-exceptions for
    exception groups.
    """
    try:
        if exception is None:
            return "None"

        sub_exceptions = (
            _safe_get_exceptions(exception) if hasattr(exception, "exceptions") else []
        )
        main_str = f"{type(exception).__name__}: {_safe_str(exception)}"
        if not sub_exceptions:
            return main_str

        sub_exception_strs = [
            f"{type(sub_exc).__name__}: {_safe_str(sub_exc)}"
            for sub_exc in sub_exceptions
        ]
        return f"{main_str} (Sub-exceptions: {'; '.join(sub_exception_strs)})"
    except Exception:
        try:
            return f"<{type(exception).__name__} (formatting failed)>"
        except Exception:
            return "<exception (all formatting failed)>"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its summary and traceback. Designed to never throw,
    even for broken exception objects or failing loggers, so it is safe to
    call from the request error boundary.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Relay]", "[Ledger]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    safe_prefix = _safe_str(prefix) if prefix is not None else ""
    message = f"{safe_prefix} Exception: {format_exception_message(exception)}"
    try:
        logger.log(
            level,
            message,
            exc_info=exception if exception is not None else False,
        )
    except Exception:
        try:
            logger.log(level, message)
        except Exception:
            # Logging itself is broken, nothing left to report to
            pass
