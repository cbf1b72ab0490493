"""
State machine enums for settlement models.

This module defines the state enums used by settlement models with django-fsm.
"""

from settlements.state_machines.states import ConfirmationState, SettlementTrigger

__all__ = [
    "ConfirmationState",
    "SettlementTrigger",
]
