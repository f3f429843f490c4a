"""Shared pytest fixtures for the rate-card approval test suite."""

from __future__ import annotations

import sqlite3
import sys
from collections.abc import Iterator
from typing import Any

import pytest
import structlog

from rate_approval.approval.gateways import AdminApprovalGateway, PublicApprovalGateway
from rate_approval.approval.machine import ApprovalStateMachine
from rate_approval.audit.logger import AuditLogger
from rate_approval.notifications.email import LoggingMailer
from rate_approval.store.repository import RateCardRepository
from rate_approval.store.schema import close_rate_card_db, init_rate_card_db
from rate_approval.tokens.issuer import ApprovalTokenIssuer


def region(assam: Any, surface: Any, air: Any, rest: Any) -> dict[str, Any]:
    """Build a camelCase region row."""
    return {
        "assam": assam,
        "northEastBySurface": surface,
        "northEastByAirAgentImport": air,
        "restOfIndia": rest,
    }


@pytest.fixture(autouse=True)
def _quiet_structlog() -> Iterator[None]:
    """Send log lines to stderr, uncached, so stdout stays free for CLI output."""
    structlog.configure(
        processors=[structlog.stdlib.add_log_level, structlog.dev.ConsoleRenderer(colors=False)],
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture
def sample_input() -> dict[str, Any]:
    """A fully populated rate-card input as an admin client would send it."""
    return {
        "name": "Acme Logistics 2026",
        "fuelChargePercentage": 12,
        "doxPricing": {
            "0.1g-250g": region(30, 40, 55, 70),
            "251g-500g": region(45, 60, 75, 90),
            "additional-500g": region(20, 25, 30, 35),
        },
        "priorityPricing": {
            "0.1g-500g": region(60, 80, 95, 110),
            "additional-500g": region(35, 45, 50, 60),
        },
        "nonDoxSurfacePricing": region(8, 10, 11, "12.5"),
        "nonDoxAirPricing": region(80, 90, 100, 120),
        "reversePricing": {
            "toAssam": {
                "byRoad": {"normal": 10, "priority": 15},
                "byTrain": {"normal": 8, "priority": 12},
                "byFlight": {"normal": 30, "priority": 40},
            },
            "toNorthEast": {
                "byRoad": {"normal": 11, "priority": 16},
                "byTrain": {"normal": 9, "priority": 13},
                "byFlight": {"normal": 32, "priority": 42},
            },
        },
        "clientContact": {
            "email": "Buyer@Acme.example.com",
            "name": "Jane Buyer",
            "company": "Acme Corp",
        },
        "notes": "Quarterly review in March",
    }


@pytest.fixture
def conn() -> Iterator[sqlite3.Connection]:
    """An in-memory rate-card database with all tables created."""
    connection = init_rate_card_db(":memory:")
    yield connection
    close_rate_card_db(connection)


@pytest.fixture
def repository(conn: sqlite3.Connection) -> RateCardRepository:
    """A repository that records audit entries on the same connection."""
    return RateCardRepository(conn, audit_logger=AuditLogger(conn))


@pytest.fixture
def issuer(repository: RateCardRepository) -> ApprovalTokenIssuer:
    """Token issuer bound to the test repository."""
    return ApprovalTokenIssuer(repository)


@pytest.fixture
def machine(repository: RateCardRepository) -> ApprovalStateMachine:
    """The shared approval state machine."""
    return ApprovalStateMachine(repository)


@pytest.fixture
def mailer() -> LoggingMailer:
    """A mailer that keeps sent messages for inspection."""
    return LoggingMailer()


@pytest.fixture
def admin_gateway(
    repository: RateCardRepository,
    machine: ApprovalStateMachine,
    issuer: ApprovalTokenIssuer,
    mailer: LoggingMailer,
) -> AdminApprovalGateway:
    """Admin gateway wired to the test services."""
    return AdminApprovalGateway(
        repository,
        machine,
        issuer,
        mailer=mailer,
        public_base_url="https://pricing.example.com",
        mail_sender="pricing@example.com",
    )


@pytest.fixture
def public_gateway(
    issuer: ApprovalTokenIssuer, machine: ApprovalStateMachine, mailer: LoggingMailer
) -> PublicApprovalGateway:
    """Public gateway wired to the test services."""
    return PublicApprovalGateway(
        issuer, machine, mailer=mailer, mail_sender="pricing@example.com"
    )
