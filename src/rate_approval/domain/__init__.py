"""Domain types, models, and errors for corporate rate cards."""

from rate_approval.domain.errors import (
    AlreadyProcessedError,
    ConflictError,
    DuplicateNameError,
    EmailDeliveryError,
    InvalidStateError,
    NotFoundError,
    RateCardError,
    RateCardValidationError,
    TokenInvalidError,
    UnauthorizedError,
)
from rate_approval.domain.models import (
    ClientContact,
    ModeRates,
    PricingTables,
    RateCard,
    RateCardInput,
    RateCardPage,
    RateCardPatch,
    RegionRates,
    ReversePricing,
    ReverseRoute,
)
from rate_approval.domain.types import (
    TERMINAL_STATUSES,
    ApprovalChannel,
    DoxBracket,
    PriorityBracket,
    RateCardStatus,
    Region,
    ReverseDestination,
    ServiceLevel,
    ShipmentType,
    TransportMode,
)

__all__ = [
    "TERMINAL_STATUSES",
    "AlreadyProcessedError",
    "ApprovalChannel",
    "ClientContact",
    "ConflictError",
    "DoxBracket",
    "DuplicateNameError",
    "EmailDeliveryError",
    "InvalidStateError",
    "ModeRates",
    "NotFoundError",
    "PricingTables",
    "PriorityBracket",
    "RateCard",
    "RateCardError",
    "RateCardInput",
    "RateCardPage",
    "RateCardPatch",
    "RateCardStatus",
    "RateCardValidationError",
    "Region",
    "RegionRates",
    "ReverseDestination",
    "ReversePricing",
    "ReverseRoute",
    "ServiceLevel",
    "ShipmentType",
    "TokenInvalidError",
    "TransportMode",
    "UnauthorizedError",
]
