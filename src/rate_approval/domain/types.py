"""Domain enumerations for corporate rate cards and their approval lifecycle."""

from enum import StrEnum


class RateCardStatus(StrEnum):
    """Lifecycle states of a rate card."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalChannel(StrEnum):
    """Surface through which a rate card reached its terminal state."""

    NONE = "none"
    INTERNAL = "internal"
    PUBLIC = "public"


class Region(StrEnum):
    """Destination regions priced on every region rate row."""

    ASSAM = "assam"
    NORTH_EAST_BY_SURFACE = "northEastBySurface"
    NORTH_EAST_BY_AIR_AGENT_IMPORT = "northEastByAirAgentImport"
    REST_OF_INDIA = "restOfIndia"


class DoxBracket(StrEnum):
    """Weight brackets for standard DOX (document) shipments."""

    UP_TO_250G = "0.1g-250g"
    FROM_251G_TO_500G = "251g-500g"
    ADDITIONAL_500G = "additional-500g"


class PriorityBracket(StrEnum):
    """Weight brackets for priority DOX shipments."""

    UP_TO_500G = "0.1g-500g"
    ADDITIONAL_500G = "additional-500g"


class ReverseDestination(StrEnum):
    """Destination groups for reverse (inbound) logistics pricing."""

    TO_ASSAM = "toAssam"
    TO_NORTH_EAST = "toNorthEast"


class TransportMode(StrEnum):
    """Transport modes priced for reverse logistics."""

    BY_ROAD = "byRoad"
    BY_TRAIN = "byTrain"
    BY_FLIGHT = "byFlight"


class ServiceLevel(StrEnum):
    """Normal or priority delivery for reverse logistics."""

    NORMAL = "normal"
    PRIORITY = "priority"


class ShipmentType(StrEnum):
    """Document (DOX) or parcel (NON-DOX) shipments."""

    DOX = "dox"
    NON_DOX = "non-dox"


TERMINAL_STATUSES: frozenset[RateCardStatus] = frozenset(
    {RateCardStatus.APPROVED, RateCardStatus.REJECTED}
)
