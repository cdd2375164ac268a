"""Plan, coin and payment schemas"""

from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool

from web_ui.api.schemas.common import CamelModel

BillingPeriodName = Literal["weekly", "monthly", "yearly", "lifetime"]


# ============================================================================
# Catalog
# ============================================================================

class PlanCreateRequest(CamelModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    price: Decimal = Field(..., ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    billing_period: BillingPeriodName
    features: List[str] = Field(..., min_length=1)
    is_active: bool = True
    max_stories: Optional[int] = Field(None, ge=1)


class PlanUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    billing_period: Optional[BillingPeriodName] = None
    features: Optional[List[str]] = Field(None, min_length=1)
    is_active: Optional[bool] = None
    max_stories: Optional[int] = Field(None, ge=1)


class CoinPackageCreateRequest(CamelModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    coins: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0)
    currency: str = Field("INR", min_length=3, max_length=3)
    is_active: bool = True


class CoinPackageUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    coins: Optional[int] = Field(None, ge=1)
    price: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    is_active: Optional[bool] = None


class PlanCoinCostRequest(CamelModel):
    plan_id: int
    coin_cost: int = Field(..., ge=0)


class CoinSettingsRequest(CamelModel):
    coins_per_story: int = Field(..., ge=1)


class GrantCoinsRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)


# ============================================================================
# Admin flags
# ============================================================================

class SetAdminRequest(CamelModel):
    is_admin: StrictBool


class SetBlockedRequest(CamelModel):
    is_blocked: StrictBool


# ============================================================================
# Coin redemption and payments
# ============================================================================

class PurchaseWithCoinsRequest(CamelModel):
    plan_id: int


class CreateOrderRequest(CamelModel):
    coin_package_id: int


class VerifyPaymentRequest(BaseModel):
    """Razorpay checkout callback; the processor's field names are kept as-is"""
    model_config = ConfigDict(populate_by_name=True)

    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)
    coin_package_id: int = Field(..., alias="coinPackageId")
