"""
Portfolio API Structured Logging

structlog configured on top of the standard library so that application
events and third-party library records share one pipeline:

- Console output rendered for humans
- Daily rotated JSON files under LOG_DIR, kept for LOG_FILE_RETENTION_DAYS
- Categorised helpers for auth, database, security, admin, activity and API usage
- Process-wide request counters logged and reset on a fixed interval
"""

import asyncio
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from .config import Settings, get_settings

logger = structlog.get_logger("portfolio_api")

_configured = False

_SHARED_PROCESSORS = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure structlog and the root logger handlers once per process."""
    global _configured
    if _configured:
        return

    settings = settings or get_settings()
    level = getattr(logging, settings.LOG_LEVEL)

    structlog.configure(
        processors=[structlog.stdlib.filter_by_level]
        + _SHARED_PROCESSORS
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=False),
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console_handler)
    root.setLevel(level)

    file_handler = _build_file_handler(settings)
    if file_handler is not None:
        root.addHandler(file_handler)

    _configured = True


def _build_file_handler(settings: Settings) -> Optional[logging.Handler]:
    """Daily rotated JSON file handler, or None when LOG_DIR is unusable."""
    log_dir = Path(settings.LOG_DIR)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        # Logging is not configured yet, so stderr is the only sink.
        print(f"Failed to create log directory {log_dir}: {e}", file=sys.stderr)
        return None

    handler = logging.handlers.TimedRotatingFileHandler(
        log_dir / "portfolio.log",
        when="midnight",
        backupCount=settings.LOG_FILE_RETENTION_DAYS,
        encoding="utf-8",
    )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(default=str),
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )
    return handler


def _user_summary(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not user:
        return None
    return {key: user.get(key) for key in ("id", "username", "role")}


def database_category(operation: str) -> str:
    """Classify a database operation by its SQL verb."""
    upper = operation.upper()
    for verb in ("INSERT", "UPDATE", "DELETE"):
        if verb in upper:
            return verb
    if "FAIL" in upper or "ERROR" in upper:
        return "ERROR"
    return "SELECT"


_ACTIVITY_KEYWORDS = (
    ("login", "auth"),
    ("logout", "auth"),
    ("admin", "admin"),
    ("data", "data"),
    ("error", "error"),
    ("performance", "performance"),
    ("security", "security"),
)


def activity_category(action: str) -> str:
    """Classify a free-form activity description."""
    lowered = action.lower()
    for keyword, category in _ACTIVITY_KEYWORDS:
        if keyword in lowered:
            return category
    return "general"


def api_category(endpoint: str) -> str:
    if "/admin" in endpoint:
        return "ADMIN"
    if "/login" in endpoint or "/logout" in endpoint:
        return "AUTH"
    return "PUBLIC"


def performance_grade(response_time_ms: Optional[float]) -> str:
    """Grade a response time: FAST, NORMAL, MODERATE or SLOW."""
    if response_time_ms is None:
        return "NORMAL"
    if response_time_ms > 2000:
        return "SLOW"
    if response_time_ms > 1000:
        return "MODERATE"
    if response_time_ms < 100:
        return "FAST"
    return "NORMAL"


def auth(message: str, user: Optional[Dict[str, Any]] = None, **fields: Any) -> None:
    logger.info(f"[auth] {message}", user=_user_summary(user), **fields)


def database(operation: str, table: Optional[str] = None, **fields: Any) -> None:
    """Log a database operation with its derived category."""
    category = database_category(operation)
    logger.info(
        f"[database:{category}] {operation}",
        operation=operation,
        table=table,
        category=category,
        **fields,
    )


def security(message: str, **fields: Any) -> None:
    logger.warning(f"[security] {message}", **fields)


def admin(message: str, admin: Optional[Dict[str, Any]] = None, **fields: Any) -> None:
    logger.info(f"[admin] {message}", admin=_user_summary(admin), **fields)


def activity(action: str, user: Optional[Dict[str, Any]] = None, **fields: Any) -> None:
    """Log a user or system action with its derived category."""
    category = activity_category(action)
    logger.info(
        f"[activity:{category}] {action}",
        action=action,
        category=category,
        user=_user_summary(user),
        **fields,
    )


def api_usage(
    endpoint: str,
    method: str,
    response_time_ms: Optional[float] = None,
    user: Optional[Dict[str, Any]] = None,
) -> None:
    """Log one API call with its category and performance grade."""
    category = api_category(endpoint)
    logger.info(
        f"[api:{category}] {method} {endpoint}",
        endpoint=endpoint,
        method=method,
        category=category,
        performance=performance_grade(response_time_ms),
        response_time_ms=response_time_ms,
        user=_user_summary(user),
    )


class LogStats:
    """Process-wide request counters, logged and reset periodically."""

    COUNTERS = (
        "total_requests",
        "admin_requests",
        "public_requests",
        "login_attempts",
        "login_success",
        "login_failures",
        "errors",
        "slow_requests",
    )

    def __init__(self):
        self.counters: Dict[str, int] = dict.fromkeys(self.COUNTERS, 0)
        self._task: Optional[asyncio.Task] = None

    def increment(self, name: str, value: int = 1) -> None:
        # Unknown counter names are ignored.
        if name in self.counters:
            self.counters[name] += value

    def snapshot(self) -> Dict[str, int]:
        return dict(self.counters)

    def reset(self) -> None:
        for name in self.counters:
            self.counters[name] = 0

    def log_and_reset(self) -> Dict[str, int]:
        snapshot = self.snapshot()
        logger.info(
            "System statistics",
            stats=snapshot,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        self.reset()
        return snapshot

    async def _run(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.log_and_reset()

    def start(self, interval: float) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(interval))

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


log_stats = LogStats()
