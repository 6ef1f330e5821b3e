"""Order Service - admission-controlled bulk order submission.

Run locally:
    uvicorn apps.order_service.main:app --port 8010
"""

from apps.order_service.app_factory import create_app

app = create_app()


if __name__ == "__main__":
    import uvicorn

    from apps.order_service.config import get_config

    uvicorn.run(
        "apps.order_service.main:app",
        host="0.0.0.0",
        port=8010,
        log_level=get_config().log_level.lower(),
    )
