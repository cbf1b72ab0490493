"""
Settlement services.

- SettlementService: Computes plans and stores them as versions
- ConfirmationCoordinator: Confirmation protocol over the current version
"""

from settlements.services.coordinator import ConfirmationCoordinator
from settlements.services.settlement_service import SettlementService

__all__ = [
    "ConfirmationCoordinator",
    "SettlementService",
]
