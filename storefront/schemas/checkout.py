from typing import Optional
from pydantic import BaseModel, ConfigDict


class AddressPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    full_name: Optional[str] = None
    mobile_number: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class CardPayload(BaseModel):
    card_number: Optional[str] = None
    expiry_date: Optional[str] = None
    cvv: Optional[str] = None
    cardholder_name: Optional[str] = None


class CheckoutRequestBody(BaseModel):
    """Fields may be partial; completeness is checked by the checkout gate."""

    shipping_address_id: Optional[int] = None
    shipping_address: Optional[AddressPayload] = None
    billing_address: Optional[AddressPayload] = None
    payment_method: str = "credit-card"
    card: Optional[CardPayload] = None
    save_address: bool = False


class ConfirmCheckoutRequest(CheckoutRequestBody):
    payment_intent_id: Optional[str] = None
