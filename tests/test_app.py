"""Tests for application wiring: logging configuration, services, and app factory."""

from __future__ import annotations

import inspect
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient
from structlog_sentry import SentryProcessor

from rate_approval.app import configure_logging, create_app, initialize_services, main
from rate_approval.approval.gateways import AdminApprovalGateway, PublicApprovalGateway
from rate_approval.config import Settings
from rate_approval.notifications.email import LoggingMailer
from rate_approval.observability.metrics import RATE_CARDS_PENDING
from rate_approval.store.schema import close_rate_card_db


def _reset_structlog() -> None:
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def _restore_structlog() -> Iterator[None]:
    """configure_logging caches loggers process-wide; undo it after each test."""
    config = structlog.get_config()
    yield
    structlog.reset_defaults()
    structlog.configure(**config)
    structlog.contextvars.clear_contextvars()


def _base_settings(tmp_path: Path, **overrides: Any) -> Settings:
    defaults: dict[str, Any] = {
        "_env_file": None,
        "database_path": tmp_path / "data" / "rate_cards.db",
        "admin_api_key": "k",
    }
    defaults.update(overrides)
    return Settings(**defaults)


class TestConfigureLogging:
    """Tests for structlog configuration in dev and production modes."""

    def test_development_mode_uses_console_renderer(self) -> None:
        _reset_structlog()
        configure_logging(production=False)
        processors = structlog.get_config()["processors"]
        assert any(isinstance(p, structlog.dev.ConsoleRenderer) for p in processors)

    def test_production_mode_uses_json_renderer(self) -> None:
        _reset_structlog()
        configure_logging(production=True)
        processors = structlog.get_config()["processors"]
        assert any(isinstance(p, structlog.processors.JSONRenderer) for p in processors)

    def test_sentry_processor_only_when_enabled(self) -> None:
        _reset_structlog()
        configure_logging(production=True)
        assert not any(isinstance(p, SentryProcessor) for p in structlog.get_config()["processors"])

        _reset_structlog()
        configure_logging(production=True, sentry_enabled=True)
        assert any(isinstance(p, SentryProcessor) for p in structlog.get_config()["processors"])
        _reset_structlog()


class TestInitializeServices:
    def test_creates_database_directory_and_services(self, tmp_path: Path) -> None:
        settings = _base_settings(tmp_path)
        services = initialize_services(settings)

        assert (tmp_path / "data" / "rate_cards.db").exists()
        assert isinstance(services["admin_gateway"], AdminApprovalGateway)
        assert isinstance(services["public_gateway"], PublicApprovalGateway)
        assert isinstance(services["mailer"], LoggingMailer)
        assert services["settings"] is settings
        close_rate_card_db(services["db_conn"])

    def test_pending_gauge_reflects_existing_cards(self, tmp_path: Path) -> None:
        settings = _base_settings(tmp_path)
        services = initialize_services(settings)
        services["repository"].create({"name": "A"}, "admin")
        services["repository"].create({"name": "B"}, "admin")
        close_rate_card_db(services["db_conn"])

        reopened = initialize_services(settings)
        assert RATE_CARDS_PENDING._value.get() == 2
        close_rate_card_db(reopened["db_conn"])


class TestCreateApp:
    def test_returns_fastapi_instance(self, tmp_path: Path) -> None:
        services = initialize_services(_base_settings(tmp_path))
        app = create_app(services)

        assert isinstance(app, FastAPI)
        assert app.router.lifespan_context is not None
        assert app.state.settings is services["settings"]
        close_rate_card_db(services["db_conn"])

    def test_routes_answer(self, tmp_path: Path) -> None:
        services = initialize_services(_base_settings(tmp_path))
        client = TestClient(create_app(services))

        for method, path in [
            ("GET", "/rate-cards"),
            ("POST", "/rate-cards"),
            ("GET", "/rate-cards/unknown"),
            ("PATCH", "/rate-cards/unknown/approve"),
            ("PATCH", "/rate-cards/unknown/reject"),
            ("POST", "/rate-cards/unknown/send-approval-email"),
            ("PATCH", "/rate-cards/unknown/assign"),
            ("GET", "/corporates/corp-1/rate-card"),
            ("POST", "/corporates/corp-1/quote"),
        ]:
            response = client.request(method, path)
            assert response.status_code == 401, (method, path)

        for method, path in [
            ("GET", f"/public/rate-cards/{'0' * 64}"),
            ("POST", f"/public/rate-cards/{'0' * 64}/approve"),
            ("POST", f"/public/rate-cards/{'0' * 64}/reject"),
        ]:
            response = client.request(method, path, json={})
            assert response.status_code == 404, (method, path)
            assert response.json()["success"] is False

        for path in ("/health", "/ready", "/metrics"):
            assert client.get(path).status_code == 200, path
        close_rate_card_db(services["db_conn"])

    def test_lifespan_closes_database(self, tmp_path: Path) -> None:
        services = initialize_services(_base_settings(tmp_path))
        with TestClient(create_app(services)) as client:
            assert client.get("/ready").status_code == 200

        with pytest.raises(sqlite3.ProgrammingError):
            services["db_conn"].execute("SELECT 1")

    def test_no_deprecated_on_event(self) -> None:
        assert "on_event" not in inspect.getsource(create_app)


class TestMain:
    def test_main_serves_with_configured_port(self, tmp_path: Path) -> None:
        settings = _base_settings(tmp_path, http_port=8123)
        with (
            patch("rate_approval.app.get_settings", return_value=settings),
            patch("rate_approval.app.configure_logging") as mock_logging,
            patch("rate_approval.app.uvicorn.run") as mock_run,
        ):
            main()

        mock_logging.assert_called_once_with(production=False, sentry_enabled=False)

        mock_run.assert_called_once()
        assert mock_run.call_args.kwargs["port"] == 8123
        assert isinstance(mock_run.call_args.args[0], FastAPI)
