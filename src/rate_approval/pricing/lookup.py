"""Base-charge lookup against an approved rate card.

All monetary calculations use Decimal arithmetic.  Charges are quantized to two
decimal places with ROUND_HALF_UP rounding.  The fuel surcharge percentage
stored on the card is not applied here; it is carried as metadata for
invoicing.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import TypeVar

from pydantic import model_validator

from rate_approval.domain.errors import RateCardValidationError
from rate_approval.domain.models import CamelModel, RateCard, RegionRates, parse_model
from rate_approval.domain.types import (
    DoxBracket,
    PriorityBracket,
    Region,
    ReverseDestination,
    ServiceLevel,
    ShipmentType,
    TransportMode,
)

_T = TypeVar("_T")

TWO_PLACES = Decimal("0.01")
GRAMS_PER_KG = Decimal("1000")

# DOX bracket boundaries, in grams
DOX_FIRST_BRACKET_GRAMS = Decimal("250")
DOX_BASE_BRACKET_GRAMS = Decimal("500")
DOX_ADDITIONAL_STEP_GRAMS = Decimal("500")

# Minimum chargeable weight for reverse logistics, in kg
REVERSE_MINIMUM_KG: dict[TransportMode, Decimal] = {
    TransportMode.BY_ROAD: Decimal("500"),
    TransportMode.BY_TRAIN: Decimal("100"),
    TransportMode.BY_FLIGHT: Decimal("25"),
}


class ShipmentQuery(CamelModel):
    """A shipment to price.

    Forward shipments need a ``region``; reverse shipments need a
    ``destination`` and ``transport_mode`` and must be NON-DOX.  ``by_air``
    selects the air rather than surface row for forward NON-DOX shipments.
    """

    shipment_type: ShipmentType
    weight_kg: Decimal
    region: Region | None = None
    service_level: ServiceLevel = ServiceLevel.NORMAL
    by_air: bool = False
    reverse: bool = False
    destination: ReverseDestination | None = None
    transport_mode: TransportMode | None = None

    @model_validator(mode="after")
    def check_routing(self) -> ShipmentQuery:
        """Ensure the fields needed for the chosen route are present."""
        if not self.weight_kg.is_finite() or self.weight_kg <= 0:
            raise ValueError("weightKg must be a positive number")
        if self.reverse:
            if self.shipment_type is ShipmentType.DOX:
                raise ValueError("reverse pricing only applies to NON-DOX shipments")
            if self.destination is None or self.transport_mode is None:
                raise ValueError("reverse shipments need destination and transportMode")
        elif self.region is None:
            raise ValueError("region is required for forward shipments")
        return self


def region_rate(row: RegionRates, region: Region | str) -> Decimal:
    """Return the rate in *row* for *region*.

    Raises:
        ValueError: If *region* is not a known region.
    """
    return row.rate_for(Region(region))


def _require(value: _T | None, field: str) -> _T:
    if value is None:
        raise RateCardValidationError(f"{field} is required for this shipment")
    return value


def _additional_steps(weight_grams: Decimal) -> int:
    return math.ceil((weight_grams - DOX_BASE_BRACKET_GRAMS) / DOX_ADDITIONAL_STEP_GRAMS)


def _dox_charge(card: RateCard, region: Region, weight_grams: Decimal) -> Decimal:
    table = card.dox_pricing
    if weight_grams <= DOX_FIRST_BRACKET_GRAMS:
        return table[DoxBracket.UP_TO_250G].rate_for(region)
    base = table[DoxBracket.FROM_251G_TO_500G].rate_for(region)
    if weight_grams <= DOX_BASE_BRACKET_GRAMS:
        return base
    step = table[DoxBracket.ADDITIONAL_500G].rate_for(region)
    return base + step * _additional_steps(weight_grams)


def _priority_charge(card: RateCard, region: Region, weight_grams: Decimal) -> Decimal:
    table = card.priority_pricing
    base = table[PriorityBracket.UP_TO_500G].rate_for(region)
    if weight_grams <= DOX_BASE_BRACKET_GRAMS:
        return base
    step = table[PriorityBracket.ADDITIONAL_500G].rate_for(region)
    return base + step * _additional_steps(weight_grams)


def _reverse_charge(card: RateCard, query: ShipmentQuery) -> Decimal:
    destination = _require(query.destination, "destination")
    transport_mode = _require(query.transport_mode, "transportMode")
    per_kg = (
        card.reverse_pricing.route(destination).mode(transport_mode).rate_for(query.service_level)
    )
    chargeable = max(query.weight_kg, REVERSE_MINIMUM_KG[transport_mode])
    return per_kg * chargeable


def calculate_base_charge(card: RateCard, query: ShipmentQuery | dict) -> Decimal:
    """Calculate the base charge for a shipment under *card*.

    Args:
        card: The rate card to price against.
        query: The shipment, as a ``ShipmentQuery`` or its raw dict.

    Returns:
        The charge before fuel surcharge, with exactly 2 decimal places.

    Raises:
        RateCardValidationError: If the query is incomplete or the weight is
            not positive.
    """
    query = parse_model(ShipmentQuery, query)

    if query.reverse:
        charge = _reverse_charge(card, query)
    else:
        region = _require(query.region, "region")
        if query.shipment_type is ShipmentType.DOX:
            grams = query.weight_kg * GRAMS_PER_KG
            if query.service_level is ServiceLevel.PRIORITY:
                charge = _priority_charge(card, region, grams)
            else:
                charge = _dox_charge(card, region, grams)
        else:
            row = card.non_dox_air_pricing if query.by_air else card.non_dox_surface_pricing
            charge = row.rate_for(region) * query.weight_kg

    return charge.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
