"""Prometheus metrics for the rate-card approval service.

HTTP request count and latency come from prometheus-fastapi-instrumentator.
Business metrics:

- ``rate_card_transitions_total{status,channel}``: cards reaching ``approved``
  or ``rejected``, split by the gateway the decision came through.
- ``rate_cards_pending``: cards awaiting a decision, recomputed from the
  database after every create, transition and delete.
- ``rate_card_approval_emails_total{outcome}``: approval emails handed to the
  mailer (``sent``) or refused by it (``failed``).
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

from rate_approval.domain.types import RateCardStatus

UNINSTRUMENTED_PATHS = ("/health", "/ready", "/metrics")

RATE_CARD_TRANSITIONS: Counter = Counter(
    "rate_card_transitions_total",
    "Rate cards that reached a terminal status",
    ["status", "channel"],
)

RATE_CARDS_PENDING: Gauge = Gauge(
    "rate_cards_pending",
    "Rate cards awaiting approval or rejection",
)

APPROVAL_EMAILS: Counter = Counter(
    "rate_card_approval_emails_total",
    "Approval emails handed to the configured mailer",
    ["outcome"],
)


def refresh_pending(repository: Any) -> None:
    """Set ``rate_cards_pending`` from *repository*'s current pending count."""
    RATE_CARDS_PENDING.set(repository.count_by_status(RateCardStatus.PENDING))


def setup_metrics(app: FastAPI) -> None:
    """Attach HTTP instrumentation to *app* and serve ``/metrics``.

    Args:
        app: The FastAPI application to instrument.
    """
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=list(UNINSTRUMENTED_PATHS),
    )
    instrumentator.instrument(app)
    instrumentator.expose(app, include_in_schema=False, should_gzip=True)
