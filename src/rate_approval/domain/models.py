"""Pydantic v2 models for rate cards and their nested pricing tables.

Wire names are camelCase (``fuelChargePercentage``, ``northEastBySurface``);
Python attributes are snake_case.  Every rate cell is a non-negative finite
``Decimal``.  Rate input is coerced rather than rejected so partially filled
client forms still validate: anything that is not a usable number becomes 0.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Annotated, Any, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from rate_approval.domain.errors import RateCardValidationError
from rate_approval.domain.types import (
    TERMINAL_STATUSES,
    ApprovalChannel,
    DoxBracket,
    PriorityBracket,
    RateCardStatus,
    Region,
    ReverseDestination,
    ServiceLevel,
    TransportMode,
)

ZERO = Decimal("0")
DEFAULT_FUEL_CHARGE_PERCENTAGE = Decimal("15")
MAX_FUEL_CHARGE_PERCENTAGE = Decimal("100")

MAX_NAME_LENGTH = 200
MAX_REASON_LENGTH = 500
MAX_NOTES_LENGTH = 1000

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]{2,}$")

_B = TypeVar("_B", bound=StrEnum)
_M = TypeVar("_M", bound=BaseModel)


def coerce_rate(value: object) -> Decimal:
    """Coerce a client-supplied rate to a non-negative finite Decimal.

    Numbers and numeric strings are accepted.  ``None``, booleans, non-numeric
    strings, NaN/infinity and negative values all become ``0``.  Never raises.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        candidate = value
    elif isinstance(value, int):
        candidate = Decimal(value)
    elif isinstance(value, float):
        candidate = Decimal(str(value))
    elif isinstance(value, str):
        try:
            candidate = Decimal(value.strip())
        except InvalidOperation:
            return ZERO
    else:
        return ZERO

    if not candidate.is_finite() or candidate < 0:
        return ZERO
    return candidate


def _coerce_fuel_percentage(value: object) -> Decimal:
    if value is None:
        return DEFAULT_FUEL_CHARGE_PERCENTAGE
    return coerce_rate(value)


def _check_fuel_percentage(value: Decimal) -> Decimal:
    if value > MAX_FUEL_CHARGE_PERCENTAGE:
        raise ValueError(f"fuelChargePercentage cannot exceed {MAX_FUEL_CHARGE_PERCENTAGE}")
    return value


def _check_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("name must not be empty")
    if len(value) > MAX_NAME_LENGTH:
        raise ValueError(f"name cannot be longer than {MAX_NAME_LENGTH} characters")
    return value


def _check_notes(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if len(value) > MAX_NOTES_LENGTH:
        raise ValueError(f"notes cannot be longer than {MAX_NOTES_LENGTH} characters")
    return value or None


_rate_serializer = PlainSerializer(float, return_type=float, when_used="json")

Rate = Annotated[Decimal, BeforeValidator(coerce_rate), _rate_serializer]
FuelPercentage = Annotated[
    Decimal,
    BeforeValidator(_coerce_fuel_percentage),
    AfterValidator(_check_fuel_percentage),
    _rate_serializer,
]
CardName = Annotated[str, AfterValidator(_check_name)]
Notes = Annotated[str | None, AfterValidator(_check_notes)]


class CamelModel(BaseModel):
    """Base model accepting both camelCase wire names and snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _PricingModel(CamelModel):
    """Nested pricing structure; ``None`` is read as an empty (all-zero) table."""

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def none_as_empty(cls, data: Any) -> Any:
        """Treat an explicit ``null`` table as an empty one."""
        if data is None:
            return {}
        return data


class RegionRates(_PricingModel):
    """Four-region price breakdown attached to a weight bracket or shipment class.

    Missing regions read as 0, so every reader always sees all four keys.
    """

    assam: Rate = ZERO
    north_east_by_surface: Rate = ZERO
    north_east_by_air_agent_import: Rate = ZERO
    rest_of_india: Rate = ZERO

    def rate_for(self, region: Region) -> Decimal:
        """Return the rate for *region*."""
        return {
            Region.ASSAM: self.assam,
            Region.NORTH_EAST_BY_SURFACE: self.north_east_by_surface,
            Region.NORTH_EAST_BY_AIR_AGENT_IMPORT: self.north_east_by_air_agent_import,
            Region.REST_OF_INDIA: self.rest_of_india,
        }[region]


class ModeRates(_PricingModel):
    """Per-kg reverse-logistics rates for normal and priority delivery."""

    normal: Rate = ZERO
    priority: Rate = ZERO

    def rate_for(self, level: ServiceLevel) -> Decimal:
        """Return the rate for *level*."""
        return self.priority if level is ServiceLevel.PRIORITY else self.normal


class ReverseRoute(_PricingModel):
    """Reverse-logistics rates to one destination group, by transport mode."""

    by_road: ModeRates = Field(default_factory=ModeRates)
    by_train: ModeRates = Field(default_factory=ModeRates)
    by_flight: ModeRates = Field(default_factory=ModeRates)

    def mode(self, mode: TransportMode) -> ModeRates:
        """Return the rates for transport *mode*."""
        return {
            TransportMode.BY_ROAD: self.by_road,
            TransportMode.BY_TRAIN: self.by_train,
            TransportMode.BY_FLIGHT: self.by_flight,
        }[mode]


class ReversePricing(_PricingModel):
    """Reverse-logistics pricing for the two inbound destination groups."""

    to_assam: ReverseRoute = Field(default_factory=ReverseRoute)
    to_north_east: ReverseRoute = Field(default_factory=ReverseRoute)

    def route(self, destination: ReverseDestination) -> ReverseRoute:
        """Return the route pricing for *destination*."""
        if destination is ReverseDestination.TO_ASSAM:
            return self.to_assam
        return self.to_north_east


def _complete_brackets(
    brackets: type[_B], table: Mapping[_B, RegionRates]
) -> dict[_B, RegionRates]:
    """Return *table* with every bracket of *brackets* present, in enum order."""
    return {bracket: table.get(bracket, RegionRates()) for bracket in brackets}


class ClientContact(CamelModel):
    """Contact details of the external client a proposal is addressed to."""

    model_config = ConfigDict(frozen=True)

    email: str | None = None
    name: str | None = None
    company: str | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        """Lower-case and validate the email address; blank means absent."""
        if v is None or not v.strip():
            return None
        v = v.strip().lower()
        if not _EMAIL_PATTERN.match(v):
            raise ValueError("Please enter a valid email address")
        return v

    @field_validator("name", "company")
    @classmethod
    def trim_text(cls, v: str | None) -> str | None:
        """Trim optional text fields and bound their length."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if len(v) > MAX_NAME_LENGTH:
            raise ValueError(f"cannot be longer than {MAX_NAME_LENGTH} characters")
        return v


class PricingTables(CamelModel):
    """All pricing content of a rate card: the part an operator edits."""

    fuel_charge_percentage: FuelPercentage = DEFAULT_FUEL_CHARGE_PERCENTAGE
    dox_pricing: dict[DoxBracket, RegionRates] = Field(default_factory=dict, validate_default=True)
    priority_pricing: dict[PriorityBracket, RegionRates] = Field(
        default_factory=dict, validate_default=True
    )
    non_dox_surface_pricing: RegionRates = Field(default_factory=RegionRates)
    non_dox_air_pricing: RegionRates = Field(default_factory=RegionRates)
    reverse_pricing: ReversePricing = Field(default_factory=ReversePricing)

    @field_validator("dox_pricing", "priority_pricing", mode="before")
    @classmethod
    def none_table_as_empty(cls, v: Any) -> Any:
        """Treat a ``null`` bracket table as an empty one."""
        return {} if v is None else v

    @field_validator("dox_pricing")
    @classmethod
    def complete_dox_brackets(
        cls, v: dict[DoxBracket, RegionRates]
    ) -> dict[DoxBracket, RegionRates]:
        """Present every DOX bracket, zero-filled when absent."""
        return _complete_brackets(DoxBracket, v)

    @field_validator("priority_pricing")
    @classmethod
    def complete_priority_brackets(
        cls, v: dict[PriorityBracket, RegionRates]
    ) -> dict[PriorityBracket, RegionRates]:
        """Present every priority bracket, zero-filled when absent."""
        return _complete_brackets(PriorityBracket, v)


PRICING_FIELDS: tuple[str, ...] = tuple(PricingTables.model_fields)


class RateCardInput(PricingTables):
    """Operator input used to create a new rate card."""

    name: CardName
    client_contact: ClientContact | None = None
    notes: Notes = None


class RateCardPatch(CamelModel):
    """Typed partial update for a pending rate card.

    Only the fields below may be patched; anything else is rejected outright.
    A supplied pricing table replaces the stored table as a whole.
    """

    model_config = ConfigDict(extra="forbid")

    name: CardName | None = None
    fuel_charge_percentage: FuelPercentage | None = None
    dox_pricing: dict[DoxBracket, RegionRates] | None = None
    priority_pricing: dict[PriorityBracket, RegionRates] | None = None
    non_dox_surface_pricing: RegionRates | None = None
    non_dox_air_pricing: RegionRates | None = None
    reverse_pricing: ReversePricing | None = None
    notes: Notes = None

    def changes(self) -> dict[str, Any]:
        """Return the explicitly supplied fields keyed by attribute name."""
        return {name: getattr(self, name) for name in self.model_fields_set}


# Fields withheld from the corporate client's view of its active rate card.
CORPORATE_HIDDEN_FIELDS: frozenset[str] = frozenset(
    {
        "created_by",
        "approved_by",
        "rejected_by",
        "rejection_reason",
        "client_contact",
        "notes",
        "email_sent_at",
    }
)


class RateCard(PricingTables):
    """A corporate pricing proposal and its approval state.

    Invariants enforced on every construction:

    - ``approved_by`` is set if and only if the card is approved.
    - ``rejection_reason`` is set if and only if the card is rejected.
    - ``approval_channel`` is not ``none`` if and only if the card is terminal.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: CardName
    status: RateCardStatus = RateCardStatus.PENDING
    created_by: str
    approved_by: str | None = None
    approval_channel: ApprovalChannel = ApprovalChannel.NONE
    rejected_by: str | None = None
    rejection_reason: str | None = None
    client_contact: ClientContact | None = None
    notes: Notes = None
    corporate_client_id: str | None = None
    email_sent_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    approved_at: datetime | None = None
    rejected_at: datetime | None = None

    @model_validator(mode="after")
    def terminal_fields_match_status(self) -> RateCard:
        """Ensure audit fields are present exactly when the status calls for them."""
        if (self.status is RateCardStatus.APPROVED) != (self.approved_by is not None):
            raise ValueError("approvedBy must be set if and only if status is approved")
        if (self.status is RateCardStatus.REJECTED) != bool(self.rejection_reason):
            raise ValueError("rejectionReason must be set if and only if status is rejected")
        terminal = self.status in TERMINAL_STATUSES
        if terminal != (self.approval_channel is not ApprovalChannel.NONE):
            raise ValueError("approvalChannel must be set if and only if status is terminal")
        return self

    @property
    def is_pending(self) -> bool:
        """Return True while the card can still be edited or decided."""
        return self.status is RateCardStatus.PENDING

    def to_wire(self) -> dict[str, Any]:
        """Serialise to the camelCase JSON shape used on the wire."""
        return self.model_dump(mode="json", by_alias=True)

    def to_corporate_view(self) -> dict[str, Any]:
        """Serialise for the corporate client, without internal audit fields."""
        return self.model_dump(mode="json", by_alias=True, exclude=set(CORPORATE_HIDDEN_FIELDS))


def parse_model(model: type[_M], data: Any) -> _M:
    """Validate *data* as *model*, translating pydantic errors to domain errors.

    Raises:
        RateCardValidationError: With a readable summary of the first problem
            and the full JSON-safe error list.
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        errors: list[dict[str, Any]] = json.loads(exc.json(include_url=False))
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ())) or "body"
        message = f"{location}: {first.get('msg', 'invalid value')}"
        raise RateCardValidationError(message, errors=errors) from exc


class RateCardPage(BaseModel):
    """One page of a filtered rate-card listing."""

    items: list[RateCard]
    total_count: int
    total_pages: int
    page: int
    page_size: int

    @property
    def has_next(self) -> bool:
        """Return True if a later page holds results."""
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        """Return True if this is not the first page."""
        return self.page > 1
