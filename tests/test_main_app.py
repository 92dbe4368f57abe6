"""
Tests for lawdesk/main.py - app factory, middleware, lifespan and CORS.
"""
import asyncio
from unittest.mock import MagicMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from lawdesk.main import _cors_origins, create_app, lifespan


def _make_mock_settings(**overrides):
    """Build a mock Settings object."""
    defaults = {
        "app_env": "test",
        "log_level": "WARNING",
        "allowed_origins": "",
        "sentry_dsn": "",
        "calendar_sync_enabled": False,
        "fetch_queue_enabled": False,
        "legalkart_user_id": "",
        "legalkart_hash_key": "",
    }
    defaults.update(overrides)
    settings = MagicMock()
    for k, v in defaults.items():
        setattr(settings, k, v)
    return settings


class TestCreateApp:
    def test_returns_fastapi_instance(self):
        with patch("lawdesk.main.get_settings", return_value=_make_mock_settings()), \
             patch("lawdesk.main.configure_structured_logging"):
            app = create_app()
        assert isinstance(app, FastAPI)
        assert app.title == "LawDesk Scheduling"

    def test_routes_registered(self):
        with patch("lawdesk.main.get_settings", return_value=_make_mock_settings()), \
             patch("lawdesk.main.configure_structured_logging"):
            app = create_app()
        paths = {route.path for route in app.routes}
        assert "/api/v1/lawyers/{lawyer_id}/slots" in paths
        assert "/api/v1/bookings" in paths
        assert "/api/v1/queues/case-fetch/process" in paths
        assert "/api/v1/hearings/refresh" in paths
        assert "/health" in paths


class TestCorrelationId:
    def test_header_echoed(self):
        with patch("lawdesk.main.get_settings", return_value=_make_mock_settings()), \
             patch("lawdesk.main.configure_structured_logging"):
            with TestClient(create_app()) as client:
                response = client.get("/health", headers={"X-Correlation-ID": "req-42"})
        assert response.status_code == 200
        assert response.headers["X-Correlation-ID"] == "req-42"

    def test_header_generated(self):
        with patch("lawdesk.main.get_settings", return_value=_make_mock_settings()), \
             patch("lawdesk.main.configure_structured_logging"):
            with TestClient(create_app()) as client:
                response = client.get("/health")
        assert len(response.headers["X-Correlation-ID"]) == 32


class TestCors:
    def test_configured_origins(self):
        settings = _make_mock_settings(allowed_origins="https://app.lawdesk.in, https://admin.lawdesk.in")
        assert _cors_origins(settings) == ["https://app.lawdesk.in", "https://admin.lawdesk.in"]

    def test_dev_adds_localhost(self):
        settings = _make_mock_settings(app_env="development")
        assert "http://localhost:3000" in _cors_origins(settings)


class TestLifespan:
    async def test_disabled_workers_not_started(self):
        with patch("lawdesk.main.get_settings", return_value=_make_mock_settings()), \
             patch("lawdesk.workers.calendar_sync.run_calendar_sync") as sync_loop, \
             patch("lawdesk.workers.fetch_queue.run_fetch_queue_worker") as fetch_loop:
            async with lifespan(MagicMock()):
                pass
        sync_loop.assert_not_called()
        fetch_loop.assert_not_called()

    async def test_enabled_workers_started_and_cancelled(self):
        started = []

        async def _forever(name):
            started.append(name)
            await asyncio.sleep(3600)

        settings = _make_mock_settings(calendar_sync_enabled=True, fetch_queue_enabled=True)
        with patch("lawdesk.main.get_settings", return_value=settings), \
             patch("lawdesk.workers.calendar_sync.run_calendar_sync", new=lambda: _forever("calendar_sync")), \
             patch("lawdesk.workers.fetch_queue.run_fetch_queue_worker", new=lambda: _forever("fetch_queue")):
            async with lifespan(MagicMock()):
                await asyncio.sleep(0)
        assert sorted(started) == ["calendar_sync", "fetch_queue"]

    async def test_sentry_initialised_when_configured(self):
        settings = _make_mock_settings(sentry_dsn="https://key@sentry.example.com/1")
        with patch("lawdesk.main.get_settings", return_value=settings), \
             patch("sentry_sdk.init") as init:
            async with lifespan(MagicMock()):
                pass
        init.assert_called_once()
        assert init.call_args.kwargs["dsn"] == "https://key@sentry.example.com/1"
