"""
Structured logging with request and team context

Every record carries the request ID and, once known, the team being checked,
so a denied feature or exceeded quota can be traced back to its tenant.
"""
import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Optional
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"
TEAM_ID_HEADER = "X-Team-ID"

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
team_id_var: ContextVar[Optional[str]] = ContextVar('team_id', default=None)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def get_team_id() -> Optional[str]:
    return team_id_var.get()


def bind_team_id(team_id: Optional[str]) -> None:
    """Attach a team to log records for the rest of the current request"""
    if team_id:
        team_id_var.set(team_id)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a request ID and picks up the X-Team-ID header for logging"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        request_token = request_id_var.set(request_id)
        team_token = team_id_var.set(request.headers.get(TEAM_ID_HEADER))
        try:
            response = await call_next(request)
        finally:
            team_id_var.reset(team_token)
            request_id_var.reset(request_token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class StructuredFormatter(logging.Formatter):
    """Formatter adding env, request ID and team labels"""

    DEFAULT_FORMAT = "%(asctime)s [%(env)s] [%(request_id)s] [team=%(team_id)s] %(levelname)-8s %(name)s: %(message)s"

    def __init__(self, env: str = "dev", fmt: str = None, datefmt: str = "%Y-%m-%d %H:%M:%S"):
        self.env = env
        super().__init__(fmt=fmt or self.DEFAULT_FORMAT, datefmt=datefmt)

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = get_request_id() or "-"
        record.team_id = get_team_id() or "-"
        record.env = self.env
        return super().format(record)


def setup_logging(env: str = "dev", log_level: str = "INFO"):
    """
    Configure the root logger for the service

    Args:
        env: Environment name (dev, test, staging, prod)
        log_level: Logging level name; unknown names fall back to INFO
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(StructuredFormatter(env=env))
    root_logger.addHandler(console_handler)

    # Stripe and APScheduler are chatty at INFO
    for name, level in (
        ("uvicorn", logging.INFO),
        ("uvicorn.access", logging.INFO),
        ("sqlalchemy.engine", logging.WARNING),
        ("stripe", logging.WARNING),
        ("apscheduler", logging.WARNING),
    ):
        logging.getLogger(name).setLevel(level)

    return root_logger
