"""Error reporting to Sentry.

Errors reach Sentry through structlog (``get_sentry_processor``), not through
stdlib logging capture.  Approval tokens travel in public URLs and grant a
decision on a rate card, so they are redacted from every event before it
leaves the process.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration
from structlog_sentry import SentryProcessor

_APPROVAL_TOKEN_PATH = re.compile(r"(/public/rate-cards/|/pricing-approval/)[^/?#]+")
REDACTED = "[redacted]"


def scrub_approval_tokens(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any]:
    """``before_send`` hook replacing approval tokens in the request URL."""
    request = event.get("request")
    if isinstance(request, dict) and isinstance(request.get("url"), str):
        request["url"] = _APPROVAL_TOKEN_PATH.sub(rf"\1{REDACTED}", request["url"])
    return event


def init_sentry(dsn: str, environment: str = "development") -> bool:
    """Start the Sentry SDK when *dsn* is configured.

    Args:
        dsn: Sentry DSN.  Empty disables reporting.
        environment: ``production`` or ``development``.

    Returns:
        True when the SDK was started.
    """
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=0.1,
        send_default_pii=False,
        before_send=scrub_approval_tokens,
        integrations=[LoggingIntegration(event_level=None, level=None)],
    )
    return True


def get_sentry_processor() -> structlog.types.Processor:
    """structlog processor forwarding ERROR events to Sentry.

    Belongs after ``add_log_level`` and before the renderer.
    """
    return SentryProcessor(event_level=logging.ERROR)
