from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERY_CONFIRMATION_PENDING = "delivery_confirmation_pending"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    ONLINE = "online"


class ActorRole(str, Enum):
    SELLER = "seller"
    BUYER = "buyer"


class BuyerDetails(BaseModel):
    buyerName: str
    buyerEmail: str
    buyerPhone: str
    buyerAddress: str
    buyerCity: str
    buyerState: str
    buyerPincode: str


class PurchaseCreate(BuyerDetails):
    postId: str
    paymentMethod: PaymentMethod = PaymentMethod.CASH
    requestId: Optional[str] = Field(default=None, max_length=128, pattern=r"^[A-Za-z0-9_-]+$")


class Purchase(BuyerDetails):
    id: str
    postId: str
    artworkTitle: str = "Untitled"
    artworkImage: str = ""
    artistId: str
    artistName: str = "Artist"
    artistEmail: str = ""
    buyerId: str
    price: float = Field(ge=0)
    paymentMethod: PaymentMethod
    status: OrderStatus
    requestId: Optional[str] = None
    createdAt: str
    updatedAt: str
    deliveredAt: Optional[str] = None


class StatusChangeRequest(BaseModel):
    status: OrderStatus


class PurchaseNotificationRequest(BaseModel):
    purchaseId: str


class StatusUpdateEmailRequest(BaseModel):
    purchaseId: str
