from typing import Optional
from pydantic import BaseModel


class AddCartItemRequest(BaseModel):
    product_id: Optional[int] = None
    quantity: int = 1


class UpdateCartItemRequest(BaseModel):
    quantity: int
