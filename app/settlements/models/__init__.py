"""
Settlement domain models.

- SettlementPlan: A versioned settlement plan and its confirmation state
- ConfirmationRecord: One participant's agreement to one plan version
"""

from settlements.models.confirmation import ConfirmationRecord
from settlements.models.settlement_plan import SettlementPlan

__all__ = [
    "ConfirmationRecord",
    "SettlementPlan",
]
