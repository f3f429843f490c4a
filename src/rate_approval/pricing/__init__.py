"""Base-charge lookup against approved rate cards.

Re-exports key functions and types for convenient access:
    from rate_approval.pricing import calculate_base_charge, ShipmentQuery
"""

from rate_approval.pricing.lookup import ShipmentQuery, calculate_base_charge, region_rate

__all__ = ["ShipmentQuery", "calculate_base_charge", "region_rate"]
