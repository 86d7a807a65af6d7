import uuid
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, PlainSerializer

# Decimal amounts go out as JSON numbers
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class PayoutApproval(BaseModel):
    payout_id: uuid.UUID
    amount: Money
    partner_name: str
    previous_balance: Money
    new_balance: Money


class PayoutRejection(BaseModel):
    payout_id: uuid.UUID
    rejection_reason: str
