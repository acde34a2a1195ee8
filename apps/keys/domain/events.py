"""
Key Custody Domain Events
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from shared.domain.base import DomainEvent


@dataclass
class KeyTransactionEvent(DomainEvent):
    transaction_id: Any
    key_id: Any
    booking_id: Any
    borrower_id: Any


@dataclass
class KeyCheckedOut(KeyTransactionEvent):
    expected_return_at: Optional[datetime] = None


@dataclass
class KeyReturned(KeyTransactionEvent):
    was_overdue: bool = False


@dataclass
class KeyOverdue(KeyTransactionEvent):
    """
    Event: A key was not returned by its expected time

    Triggers:
    - Remind the borrower and the issuing custodian
    """
    expected_return_at: Optional[datetime] = None
