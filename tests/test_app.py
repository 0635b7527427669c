"""Tests for application entry point: structlog config, service initialization, and app creation."""

from __future__ import annotations

import inspect
import io
import sqlite3
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from marketplace.actions import MarketplaceActions
from marketplace.app import configure_logging, create_app, initialize_services
from marketplace.config import Settings
from marketplace.domain.models import CreateOfferInput, CreateRequestInput, OfferUpdateInput
from marketplace.domain.types import OfferStatus
from marketplace.observability.metrics import ACTIVE_NEGOTIATIONS
from marketplace.store.database import Database


def _reset_structlog() -> None:
    """Reset structlog so cached loggers don't leak between tests."""
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def _restore_structlog() -> Iterator[None]:
    yield
    _reset_structlog()


def _base_settings(tmp_path: Path, **overrides) -> Settings:
    """Build a Settings instance pointing the database into tmp_path."""
    defaults = {"database_path": tmp_path / "marketplace.db"}
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)  # type: ignore[call-arg]


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

    def test_default_is_development_mode(self) -> None:
        _reset_structlog()
        configure_logging()
        processors = structlog.get_config()["processors"]
        assert any(isinstance(p, structlog.dev.ConsoleRenderer) for p in processors)

    def test_sentry_processor_only_when_enabled(self) -> None:
        from structlog_sentry import SentryProcessor

        _reset_structlog()
        configure_logging(sentry_enabled=False)
        assert not any(
            isinstance(p, SentryProcessor) for p in structlog.get_config()["processors"]
        )

        _reset_structlog()
        configure_logging(sentry_enabled=True)
        assert any(isinstance(p, SentryProcessor) for p in structlog.get_config()["processors"])
        _reset_structlog()

    def test_writes_to_given_stream(self) -> None:
        _reset_structlog()
        stream = io.StringIO()
        configure_logging(production=True, file=stream)
        structlog.get_logger().info("sweep_started", expired=0)
        assert '"event": "sweep_started"' in stream.getvalue()


class TestInitializeServices:
    """Tests for service initialization."""

    def test_opens_database_at_configured_path(self, tmp_path: Path) -> None:
        _reset_structlog()
        db_path = tmp_path / "nested" / "marketplace.db"
        services = initialize_services(_base_settings(tmp_path, database_path=db_path))

        assert isinstance(services["db"], Database)
        assert isinstance(services["actions"], MarketplaceActions)
        assert db_path.exists()

        services["db"].conn.close()

    def test_uses_supplied_database(self, tmp_path: Path) -> None:
        db = Database.open(":memory:")
        services = initialize_services(_base_settings(tmp_path), db=db)

        assert services["db"] is db
        assert not (tmp_path / "marketplace.db").exists()
        db.conn.close()

    def test_expiry_days_passed_to_engine(self, tmp_path: Path) -> None:
        db = Database.open(":memory:")
        services = initialize_services(
            _base_settings(tmp_path, negotiation_expiry_days=3), db=db
        )

        assert services["actions"].negotiations._expiry_days == 3
        db.conn.close()

    def test_active_negotiations_gauge_seeded_from_store(self, tmp_path: Path) -> None:
        """Startup recovery sets the gauge from negotiations already in progress."""
        db = Database.open(tmp_path / "marketplace.db")
        actions = MarketplaceActions(db)
        request = actions.lifecycle.create_request(
            "requester",
            CreateRequestInput(title="Sponge", description="Dry", request_type="GENERAL"),
        )
        offer = actions.offers.create_offer(request.id, "seller", CreateOfferInput())
        actions.offers.update_offer(
            offer.id, "requester", OfferUpdateInput(status=OfferStatus.ACCEPTED)
        )
        ACTIVE_NEGOTIATIONS.set(0)

        initialize_services(_base_settings(tmp_path), db=db)

        assert REGISTRY.get_sample_value("marketplace_active_negotiations") == 1
        db.conn.close()


class TestCreateApp:
    """Tests for FastAPI app creation."""

    def _app(self, tmp_path: Path) -> tuple[FastAPI, Database]:
        db = Database.open(":memory:")
        return create_app(initialize_services(_base_settings(tmp_path), db=db)), db

    def test_returns_fastapi_instance(self, tmp_path: Path) -> None:
        app, db = self._app(tmp_path)
        assert isinstance(app, FastAPI)
        db.conn.close()

    def test_create_app_uses_lifespan(self, tmp_path: Path) -> None:
        app, db = self._app(tmp_path)
        assert app.router.lifespan_context is not None
        db.conn.close()

    def test_no_deprecated_on_event(self) -> None:
        source = inspect.getsource(create_app)
        assert "on_event" not in source

    def test_routes_registered(self, tmp_path: Path) -> None:
        app, db = self._app(tmp_path)
        route_paths = {getattr(route, "path", None) for route in app.routes}
        assert {
            "/requests",
            "/requests/{request_id}",
            "/requests/{request_id}/offers",
            "/offers/{offer_id}",
            "/negotiations/{negotiation_id}/messages",
            "/requests/{request_id}/complete",
            "/health",
            "/ready",
            "/metrics",
        } <= route_paths
        db.conn.close()

    def test_state_populated(self, tmp_path: Path) -> None:
        app, db = self._app(tmp_path)
        assert isinstance(app.state.settings, Settings)
        assert app.state.db is db
        assert isinstance(app.state.actions, MarketplaceActions)
        db.conn.close()

    def test_shutdown_closes_database(self, tmp_path: Path) -> None:
        app, db = self._app(tmp_path)
        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
        with pytest.raises(sqlite3.ProgrammingError):
            db.conn.execute("SELECT 1")


class TestMainImport:
    """Test that entry points can be imported without side effects."""

    def test_main_importable(self) -> None:
        from marketplace.app import main, run

        assert callable(main)
        assert callable(run)
