from typing import Any, Dict, Optional

from fastapi import APIRouter

from dependencies import CurrentUser, Notifications, Orders
from models.purchase import (
    ActorRole,
    OrderStatus,
    PurchaseCreate,
    PurchaseNotificationRequest,
    StatusChangeRequest,
    StatusUpdateEmailRequest,
)
from services.errors import Unauthorized
from services.orders import allowed_transitions

router = APIRouter()


@router.post("", status_code=201)
def create_purchase(request: PurchaseCreate, orders: Orders, current_user: CurrentUser) -> Dict[str, Any]:
    """Place a purchase request for an artwork. The artist and buyer are emailed."""
    purchase = orders.create_purchase(current_user, request)
    return {"success": True, "data": purchase.model_dump(mode="json")}


@router.get("/mine")
def my_purchases(orders: Orders, current_user: CurrentUser, status: Optional[OrderStatus] = None) -> Dict[str, Any]:
    """Orders placed by the signed-in user"""
    purchases = orders.list_purchases_for_buyer(current_user, status)
    return {"success": True, "data": [p.model_dump(mode="json") for p in purchases]}


@router.get("/requests")
def purchase_requests(orders: Orders, current_user: CurrentUser,
                      status: Optional[OrderStatus] = None) -> Dict[str, Any]:
    """Orders placed on the signed-in user's artwork"""
    purchases = orders.list_requests_for_artist(current_user, status)
    return {"success": True, "data": [p.model_dump(mode="json") for p in purchases]}


@router.post("/send-notification")
def send_purchase_notification(
        request: PurchaseNotificationRequest,
        orders: Orders,
        dispatcher: Notifications,
        current_user: CurrentUser,
) -> Dict[str, Any]:
    """Resend the purchase request email to the artist and the receipt to the buyer"""
    purchase = orders.get_purchase(current_user, request.purchaseId)
    if orders.role_of(purchase, current_user) != ActorRole.BUYER:
        raise Unauthorized("Only the buyer can resend the purchase emails")
    return {"success": True, "data": dispatcher.purchase_created(purchase)}


@router.post("/send-status-update")
def send_status_update(
        request: StatusUpdateEmailRequest,
        orders: Orders,
        dispatcher: Notifications,
        current_user: CurrentUser,
) -> Dict[str, Any]:
    """Email the other party of a purchase about its current status"""
    purchase = orders.get_purchase(current_user, request.purchaseId)
    result = dispatcher.status_changed(purchase, orders.role_of(purchase, current_user))
    return {"success": result.success, "data": result.to_dict()}


@router.get("/{purchase_id}")
def get_purchase(purchase_id: str, orders: Orders, current_user: CurrentUser) -> Dict[str, Any]:
    """A purchase plus the status changes the caller may make next"""
    purchase = orders.get_purchase(current_user, purchase_id)
    role = orders.role_of(purchase, current_user)
    data = purchase.model_dump(mode="json")
    data["role"] = role.value
    data["allowedTransitions"] = [s.value for s in allowed_transitions(purchase.status, role)]
    return {"success": True, "data": data}


@router.post("/{purchase_id}/status")
def change_status(
        purchase_id: str,
        request: StatusChangeRequest,
        orders: Orders,
        current_user: CurrentUser,
) -> Dict[str, Any]:
    """Move a purchase to a new status; only moves allowed for the caller's role succeed"""
    purchase = orders.transition(current_user, purchase_id, request.status)
    return {"success": True, "data": purchase.model_dump(mode="json")}
