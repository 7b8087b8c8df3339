"""Cash session model tracking one cashier's shift and its cash movements."""

from datetime import datetime
import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from .base import BaseDocumentModel, Money, utc_now
from .enums import MovementType


logger = logging.getLogger(__name__)

_BALANCE_SIGN = {
    MovementType.INFLOW: 1,
    MovementType.COLLECTION: 1,
    MovementType.OUTFLOW: -1,
    MovementType.CHANGE_GIVEN: -1,
}


class CashMovementModel(BaseModel):
    """Append-only record of cash entering or leaving the drawer."""

    movement_id: str = Field(..., min_length=3)
    movement_type: MovementType = Field(...)
    amount_minor: Money = Field(..., gt=0)
    description: str = Field(default="")
    payment_id: Optional[str] = Field(default=None)
    recorded_at: datetime = Field(default_factory=utc_now)

    @property
    def signed_minor(self) -> Money:
        return _BALANCE_SIGN[self.movement_type] * self.amount_minor


class CashSessionModel(BaseDocumentModel):
    """Represents a cashier shift from opening float to counted close."""

    cashier_id: str = Field(..., min_length=1)
    opening_balance_minor: Money = Field(..., ge=0)
    movements: List[CashMovementModel] = Field(default_factory=list)
    payment_ids: List[str] = Field(default_factory=list)

    is_closed: bool = Field(default=False)
    opened_at: datetime = Field(default_factory=utc_now)
    closed_at: Optional[datetime] = Field(default=None)
    closing_balance_minor: Optional[Money] = Field(default=None)
    counted_balance_minor: Optional[Money] = Field(default=None)
    difference_minor: Optional[Money] = Field(default=None)
    notes: Optional[str] = Field(default=None)

    def computed_balance_minor(self) -> Money:
        """Opening float plus inflows and collections, minus outflows and change given."""
        return self.opening_balance_minor + sum(item.signed_minor for item in self.movements)

    def movement_totals(self) -> dict:
        totals = {movement_type.value: 0 for movement_type in MovementType}
        for item in self.movements:
            totals[item.movement_type.value] += item.amount_minor
        return totals
