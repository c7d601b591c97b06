"""Pydantic schemas for validating create requests"""

from pydantic import BaseModel, Field
from datetime import date
from decimal import Decimal
from typing import Optional

from ledger_engine.domain.models import ObligationType, Periodicity


class FinancingCreate(BaseModel):
    """Request body for creating a financing and its installment plan"""

    user_id: str = Field(..., min_length=1, description="Owning user")
    principal: Decimal = Field(..., gt=0, decimal_places=2, description="Financed amount")
    installment_count: int = Field(..., gt=0, description="Number of installments")
    start_date: date
    interval_days: int = Field(30, gt=0, description="Days between installment due dates")
    interest_rate: Decimal = Field(Decimal("0"), ge=0, description="Annual rate as a decimal fraction")
    description: Optional[str] = None


class FixedAccountCreate(BaseModel):
    """Request body for creating a recurring obligation"""

    user_id: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    periodicity: Periodicity = Periodicity.MONTHLY
    type: ObligationType = ObligationType.EXPENSE
    start_date: date
    reminder_days: int = Field(3, ge=0, le=60)
