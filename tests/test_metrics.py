"""Tests for the /metrics endpoint and the rate-card business metrics."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from rate_approval.approval.gateways import AdminApprovalGateway
from rate_approval.approval.machine import ApprovalStateMachine
from rate_approval.domain.types import ApprovalChannel
from rate_approval.observability.metrics import (
    APPROVAL_EMAILS,
    RATE_CARD_TRANSITIONS,
    RATE_CARDS_PENDING,
    setup_metrics,
)
from rate_approval.store.repository import RateCardRepository


@pytest.fixture(autouse=True)
def _reset_pending_gauge() -> Iterator[None]:
    """Gauges are process-global; counters are compared by delta instead."""
    RATE_CARDS_PENDING.set(0)
    yield


@pytest.fixture()
def metrics_client() -> TestClient:
    app = FastAPI()

    @app.get("/rate-cards")
    async def rate_cards() -> dict[str, bool]:
        return {"success": True}

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready() -> dict[str, str]:
        return {"status": "ready"}

    setup_metrics(app)
    return TestClient(app)


class TestMetricsEndpoint:
    def test_exposes_http_and_business_metrics(self, metrics_client: TestClient) -> None:
        metrics_client.get("/rate-cards")
        body = metrics_client.get("/metrics").text

        assert "http_request" in body
        assert "rate_cards_pending" in body
        assert "rate_card_transitions_total" in body

    def test_probes_are_not_instrumented(self, metrics_client: TestClient) -> None:
        metrics_client.get("/health")
        metrics_client.get("/ready")
        body = metrics_client.get("/metrics").text

        handler_lines = [
            line for line in body.splitlines() if "http_request_duration" in line and 'handler="' in line
        ]
        for line in handler_lines:
            assert 'handler="/health"' not in line
            assert 'handler="/ready"' not in line

    def test_pending_gauge_is_rendered(self, metrics_client: TestClient) -> None:
        RATE_CARDS_PENDING.set(4)
        assert "rate_cards_pending 4.0" in metrics_client.get("/metrics").text


class TestBusinessMetrics:
    def test_create_resolve_and_delete_update_pending_gauge(
        self, admin_gateway: AdminApprovalGateway
    ) -> None:
        first = admin_gateway.create({"name": "First"}, "admin").card
        second = admin_gateway.create({"name": "Second"}, "admin").card
        assert RATE_CARDS_PENDING._value.get() == 2

        admin_gateway.approve(first.id, "Olivia Ops")
        assert RATE_CARDS_PENDING._value.get() == 1

        admin_gateway.delete(second.id, "admin")
        assert RATE_CARDS_PENDING._value.get() == 0

    def test_approval_email_outcomes_are_counted(
        self, admin_gateway: AdminApprovalGateway, sample_input: dict[str, Any]
    ) -> None:
        sent = APPROVAL_EMAILS.labels(outcome="sent")
        before = sent._value.get()

        result = admin_gateway.create(sample_input, "admin", send_approval_email=True)

        assert result.email_sent is True
        assert sent._value.get() == before + 1

    def test_transition_counter_is_labelled_by_channel(
        self,
        repository: RateCardRepository,
        machine: ApprovalStateMachine,
        metrics_client: TestClient,
    ) -> None:
        labels = {"status": "rejected", "channel": "public"}
        before = REGISTRY.get_sample_value("rate_card_transitions_total", labels) or 0.0

        card = repository.create({"name": "Counted"}, "admin")
        machine.reject(card.id, "Jane Buyer", "Too expensive", ApprovalChannel.PUBLIC)

        after = REGISTRY.get_sample_value("rate_card_transitions_total", labels)
        assert after == before + 1.0
        assert RATE_CARD_TRANSITIONS.labels(**labels)._value.get() == after
        assert 'rate_card_transitions_total{' in metrics_client.get("/metrics").text
