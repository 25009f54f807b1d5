"""FastAPI dependencies shared by `backend.py` and the OAuth router.

The app factory puts the config, connection store and metrics service on
`app.state`; routes pull them out through these helpers so tests can build an
app around their own store.
"""
from typing import Optional

from fastapi import Header, Query, Request

from connectors.config import AppConfig
from connectors.connection_store import ConnectionStore
from connectors.metrics_service import MetricsService


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_store(request: Request) -> ConnectionStore:
    return request.app.state.store


def get_metrics_service(request: Request) -> MetricsService:
    return request.app.state.metrics_service


def get_shop_domain(x_shop_domain: Optional[str] = Header(default=None),
                    shop: Optional[str] = Query(default=None)) -> Optional[str]:
    """Shop identity from the host (`X-Shop-Domain`), or `?shop=` on browser redirects."""
    value = (x_shop_domain or shop or '').strip().lower()
    return value or None
