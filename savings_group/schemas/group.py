from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal


class GroupSettingsUpdate(BaseModel):
    """Admin change to group settings; unset fields are left untouched."""
    contribution_amount: Optional[Decimal] = Field(None, ge=0, description="Monthly contribution per member")
    loan_interest_rate: Optional[Decimal] = Field(None, ge=0, description="Flat loan interest as a fraction (0.05 = 5%)")
    penalty_rate: Optional[Decimal] = Field(None, ge=0, description="Late installment penalty as a fraction of the loan's total due")
    contribution_penalty_rate: Optional[Decimal] = Field(None, ge=0, description="Late contribution penalty as a fraction of the contribution")
    compulsory_interest_rate: Optional[Decimal] = Field(None, ge=0, description="Monthly compulsory interest as a fraction of share value")
    share_fee: Optional[Decimal] = Field(None, ge=0, description="Value of one share")
    seed_amount: Optional[Decimal] = Field(None, ge=0, description="Seed deposit per share; 0 means none is required")
    minimum_contribution_months: Optional[int] = Field(None, ge=0, description="Paid months required before a loan request")
    loan_to_savings_ratio: Optional[Decimal] = Field(None, ge=0, description="Maximum loan as a multiple of paid contributions")
    automatic_penalties_enabled: Optional[bool] = Field(None, description="Charge overdue penalties from scheduled runs")

    class Config:
        extra = "forbid"


class TreasuryChange(BaseModel):
    """Amounts added to the treasury counters, written only by the engines."""
    total_savings: Optional[Decimal] = None
    total_income: Optional[Decimal] = None
    cash: Optional[Decimal] = None

    class Config:
        extra = "forbid"
