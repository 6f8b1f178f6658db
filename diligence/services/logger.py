"""Centralized logging service using loguru."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from diligence.config import settings

LOG_DIR = Path(settings.log_dir)
LOG_DIR.mkdir(parents=True, exist_ok=True)

logger.remove()

logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.app_log_level.upper(),
    colorize=True,
)

logger.add(
    LOG_DIR / "diligence_{time:YYYY-MM-DD}.log",
    format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
    level="DEBUG",
    rotation="00:00",
    retention="7 days",
    compression="zip",
)

for logger_name in (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "sse_starlette.sse",
    "httpx",
    "httpcore",
    "hpack",
    "openai._base_client",
    "asyncio",
):
    logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_llm_call(
    model: str,
    caller: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """Log an LLM API call."""
    call_data = {
        "timestamp": _now(),
        "model": model,
        "caller": caller,
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "total_tokens": input_tokens + output_tokens,
        "duration_ms": duration_ms,
        "status": status,
        "error": error,
    }
    if error:
        logger.error(f"LLM_CALL_FAILED: {call_data}")
    else:
        logger.info(f"LLM_CALL: {call_data}")


def log_invocation_attempt(
    label: str,
    backend: str,
    attempt: int,
    status: str,
    *,
    delay_seconds: float | None = None,
    error: Optional[str] = None,
) -> None:
    """Log one attempt made by the resilient invocation layer."""
    attempt_data = {
        "timestamp": _now(),
        "label": label,
        "backend": backend,
        "attempt": attempt,
        "status": status,
        "delay_seconds": delay_seconds,
        "error": error,
    }
    if status == "success":
        logger.debug(f"INVOCATION: {attempt_data}")
    else:
        logger.warning(f"INVOCATION_{status.upper()}: {attempt_data}")


def log_section(
    entity_name: str,
    topic_id: str,
    status: str,
    *,
    confidence: int = 0,
    sources: int = 0,
    duration_seconds: float = 0.0,
    error: Optional[str] = None,
) -> None:
    """Log a finished section research task."""
    section_data = {
        "timestamp": _now(),
        "entity_name": entity_name,
        "topic_id": topic_id,
        "status": status,
        "confidence": confidence,
        "sources": sources,
        "duration_seconds": round(duration_seconds, 3),
        "error": error,
    }
    if status == "failed":
        logger.error(f"SECTION_FAILED: {section_data}")
    else:
        logger.info(f"SECTION: {section_data}")


def log_event(
    event_type: str,
    message: str,
    **kwargs,
) -> None:
    """Log a generic event."""
    event_data = {
        "timestamp": _now(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {event_data}")
