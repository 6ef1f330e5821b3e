"""Tests for the Order Service app factory: test mode, lifespan wiring, helpers."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import anyio
import pytest
from fastapi.testclient import TestClient

from apps.order_service.admission import AdmissionGate
from apps.order_service.app_factory import (
    create_app,
    create_mock_context,
    create_test_config,
    initialize_app_context,
    shutdown_app_context,
)
from apps.order_service.bulk_submission import BulkSubmissionService
from apps.order_service.overload_detector import OverloadDetector
from apps.order_service.resource_probes import ThreadPoolProbe


class TestCreateAppTestMode:
    def test_injects_context_and_config(self):
        ctx = create_mock_context()
        config = create_test_config(max_batch_size=5)
        app = create_app(test_mode=True, test_context=ctx, test_config=config)

        with TestClient(app):
            assert app.state.context is ctx
            assert app.state.config is config
            assert app.state.version == "0.1.0"

    def test_defaults_when_nothing_injected(self):
        app = create_app(test_mode=True)
        with TestClient(app) as client:
            assert client.get("/").json()["environment"] == "test"

    def test_routes_registered(self):
        paths = create_app(test_mode=True).openapi()["paths"]
        assert "post" in paths["/api/v1/orders/batch/submit"]
        assert "get" in paths["/health"]
        assert "get" in paths["/api/v1/system/overload"]

    def test_metrics_endpoint(self):
        with TestClient(create_app(test_mode=True)) as client:
            response = client.get("/metrics/")
        assert response.status_code == 200
        assert "order_service_database_connection_status" in response.text


class TestProductionLifespan:
    def test_startup_and_shutdown(self):
        ctx = create_mock_context()
        config = create_test_config()
        with (
            patch("apps.order_service.config.get_config", return_value=config),
            patch("apps.order_service.app_factory.configure_logging") as configure_logging,
            patch(
                "apps.order_service.app_factory.initialize_app_context", return_value=ctx
            ) as init,
        ):
            app = create_app()
            with TestClient(app):
                assert app.state.context is ctx
                init.assert_called_once_with(config)
                configure_logging.assert_called_once_with(
                    service_name="order_service", log_level="INFO"
                )

        ctx.trade_client.close.assert_called_once()
        ctx.db.close.assert_called_once()


class TestInitializeAppContext:
    def test_wires_components(self):
        config = create_test_config(worker_core_threads=8, overload_detection_enabled=False)

        async def build():
            return initialize_app_context(config)

        with (
            patch("apps.order_service.database.OrderDatabase") as db_cls,
            patch("apps.order_service.trade_service_client.TradeServiceClient") as client_cls,
        ):
            db_cls.return_value.check_connection.return_value = False
            ctx = anyio.run(build)

        db_cls.assert_called_once_with(
            config.database_url,
            min_size=1,
            max_size=5,
            timeout=1.0,
            statement_timeout_ms=5000,
            persist_max_attempts=3,
        )
        client_cls.assert_called_once_with(
            "http://trade-service.test", timeout=5.0, connect_timeout=1.0
        )
        assert isinstance(ctx.overload_detector, OverloadDetector)
        assert ctx.overload_detector.enabled is False
        assert isinstance(ctx.overload_detector._thread_probe, ThreadPoolProbe)
        assert ctx.overload_detector._thread_probe.core_threads == 8
        assert isinstance(ctx.admission_gate, AdmissionGate)
        assert ctx.admission_gate.detector is ctx.overload_detector
        assert isinstance(ctx.submission_service, BulkSubmissionService)

    def test_shutdown_closes_db_even_if_client_close_fails(self):
        ctx = create_mock_context()
        ctx.trade_client.close.side_effect = RuntimeError("already closed")
        with pytest.raises(RuntimeError):
            shutdown_app_context(ctx)
        ctx.db.close.assert_called_once()


class TestHelpers:
    def test_mock_context_gate_wraps_overridden_detector(self):
        detector = MagicMock()
        ctx = create_mock_context(overload_detector=detector)
        assert ctx.admission_gate.detector is detector

    def test_mock_context_overrides(self):
        service = MagicMock()
        assert create_mock_context(submission_service=service).submission_service is service

    def test_test_config_overrides(self):
        config = create_test_config(memory_threshold=0.5)
        assert config.memory_threshold == 0.5
        assert config.max_batch_size == 100
