"""FastAPI dependency providers for the Order Service.

Routes never reach for module globals; everything comes from app.state via
these providers, so tests can swap in a mocked AppContext or config.

Usage:
    from apps.order_service.dependencies import get_config, get_context

    @router.get("/example")
    def example_route(
        ctx: AppContext = Depends(get_context),
        config: OrderServiceConfig = Depends(get_config),
    ):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

from fastapi import Request

if TYPE_CHECKING:
    from apps.order_service.app_context import AppContext
    from apps.order_service.config import OrderServiceConfig


def get_context(request: Request) -> AppContext:
    """Get application context from FastAPI app state.

    Raises:
        RuntimeError: If AppContext is not initialized in app.state

    Note:
        The lifespan stores the context before the app serves requests, so
        this only fails when startup did not complete.
    """
    from apps.order_service.app_context import AppContext as AppContextType

    ctx = getattr(request.app.state, "context", None)
    if ctx is None:
        raise RuntimeError(
            "AppContext not initialized in app.state. "
            "Check that the lifespan in app_factory.py completed startup."
        )
    return cast(AppContextType, ctx)


def get_config(request: Request) -> OrderServiceConfig:
    """Get configuration from FastAPI app state.

    Raises:
        RuntimeError: If config is not initialized in app.state
    """
    from apps.order_service.config import OrderServiceConfig as ConfigType

    config = getattr(request.app.state, "config", None)
    if config is None:
        raise RuntimeError(
            "OrderServiceConfig not initialized in app.state. "
            "Check that the lifespan in app_factory.py completed startup."
        )
    return cast(ConfigType, config)


def get_version(request: Request) -> str:
    """Get service version from FastAPI app state.

    Raises:
        RuntimeError: If version is not initialized in app.state
    """
    version = getattr(request.app.state, "version", None)
    if version is None:
        raise RuntimeError("Version not initialized in app.state.")
    return cast(str, version)
