import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from models.purchase import ActorRole, OrderStatus, Purchase, PurchaseCreate
from models.user import Session
from services.errors import InvalidTransition, NotFound, TransientIOError, Unauthorized, ValidationError
from services.firestore import FirestoreDB, PURCHASES, PreconditionFailed
from services.notifications import NotificationDispatcher
from services.retry import RetryPolicy
from utils.timestamps import now_iso

logger = logging.getLogger(__name__)

# (from, to) -> the only actor allowed to make that move
TRANSITIONS: Dict[Tuple[OrderStatus, OrderStatus], ActorRole] = {
    (OrderStatus.PENDING, OrderStatus.CONFIRMED): ActorRole.SELLER,
    (OrderStatus.PENDING, OrderStatus.CANCELLED): ActorRole.SELLER,
    (OrderStatus.CONFIRMED, OrderStatus.SHIPPED): ActorRole.SELLER,
    (OrderStatus.CONFIRMED, OrderStatus.CANCELLED): ActorRole.SELLER,
    (OrderStatus.SHIPPED, OrderStatus.DELIVERY_CONFIRMATION_PENDING): ActorRole.SELLER,
    (OrderStatus.DELIVERY_CONFIRMATION_PENDING, OrderStatus.DELIVERED): ActorRole.BUYER,
}

TERMINAL_STATES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def is_valid_transition(current: OrderStatus, requested: OrderStatus, actor: ActorRole) -> bool:
    """True if actor may move an order from current to requested"""
    return TRANSITIONS.get((current, requested)) == actor


def allowed_transitions(current: OrderStatus, actor: ActorRole) -> List[OrderStatus]:
    """Next states actor may choose from current, in table order"""
    return [to for (frm, to), who in TRANSITIONS.items() if frm == current and who == actor]


def validate_buyer_details(details: PurchaseCreate) -> None:
    """Field checks matching the checkout form; raises ValidationError on the first failure"""
    if not details.buyerName.strip():
        raise ValidationError("Please enter your name")
    if not details.buyerEmail.strip() or "@" not in details.buyerEmail:
        raise ValidationError("Please enter a valid email")
    if len(details.buyerPhone.strip()) < 10:
        raise ValidationError("Please enter a valid phone number")
    if not details.buyerAddress.strip():
        raise ValidationError("Please enter your address")
    if not details.buyerCity.strip():
        raise ValidationError("Please enter your city")
    if not details.buyerState.strip():
        raise ValidationError("Please enter your state")
    if len(details.buyerPincode.strip()) < 6:
        raise ValidationError("Please enter a valid pincode")


class OrderService:
    """
    Purchase lifecycle.

    Seller and buyer drive an order through TRANSITIONS. Each accepted move is a
    conditional write against the snapshot it was validated on, so two racing
    requests cannot both apply. Email goes out only after the write commits and
    its failure never undoes the move.
    """

    def __init__(self, db: FirestoreDB, dispatcher: NotificationDispatcher,
                 retry: Optional[RetryPolicy] = None, cas_max_rounds: int = 5,
                 clock: Callable[[], str] = now_iso):
        self.db = db
        self.dispatcher = dispatcher
        self.retry = retry or RetryPolicy()
        self.cas_max_rounds = cas_max_rounds
        self.clock = clock

    @staticmethod
    def _to_purchase(purchase_id: str, data: Dict[str, Any]) -> Purchase:
        return Purchase.model_validate({**data, "id": purchase_id})

    @staticmethod
    def role_of(purchase: Purchase, session: Session) -> ActorRole:
        if session.user_id == purchase.artistId:
            return ActorRole.SELLER
        if session.user_id == purchase.buyerId:
            return ActorRole.BUYER
        raise Unauthorized("You are not a party to this purchase")

    def create_purchase(self, session: Session, request: PurchaseCreate) -> Purchase:
        """
        Place an order for a post that is for sale. The order starts as pending.

        A client-supplied requestId makes the call idempotent: repeating it
        returns the original purchase and sends no further email. Without one the
        ID is allocated up front, so a retried write cannot create a second order.
        """
        validate_buyer_details(request)

        post = self.db.get_post(request.postId)
        if post is None:
            raise NotFound("Post", request.postId)
        if post.get("userId") == session.user_id:
            raise Unauthorized("You cannot buy your own artwork")
        if not post.get("isForSale"):
            raise ValidationError("This artwork is not for sale")

        now = self.clock()
        data = {
            "postId": request.postId,
            "artworkTitle": post.get("title") or "Untitled",
            "artworkImage": post.get("imageUrl") or "",
            "artistId": post.get("userId", ""),
            "artistName": post.get("userName") or "Artist",
            "artistEmail": post.get("userEmail") or "",
            "buyerId": session.user_id,
            "buyerName": request.buyerName.strip(),
            "buyerEmail": request.buyerEmail.strip(),
            "buyerPhone": request.buyerPhone.strip(),
            "buyerAddress": request.buyerAddress.strip(),
            "buyerCity": request.buyerCity.strip(),
            "buyerState": request.buyerState.strip(),
            "buyerPincode": request.buyerPincode.strip(),
            "price": max(float(post.get("price") or 0), 0.0),
            "paymentMethod": request.paymentMethod.value,
            "status": OrderStatus.PENDING.value,
            "requestId": request.requestId,
            "createdAt": now,
            "updatedAt": now,
        }

        if request.requestId:
            doc_id = f"{session.user_id}_{request.requestId}"
        else:
            doc_id = self.db.new_id(PURCHASES)
        purchase_id, created = self.retry.run(lambda: self.db.create_purchase(doc_id, data),
                                              f"create purchase for {request.postId}")

        if not created:
            existing = self.db.get_purchase(purchase_id)
            if existing is None:
                raise TransientIOError(f"Purchase {purchase_id} reported as existing but could not be read")
            if existing.get("postId") != request.postId:
                raise ValidationError("requestId was already used for a different purchase")
            if existing.get("createdAt") != now:
                return self._to_purchase(purchase_id, existing)
            # An earlier attempt of this call wrote it before its acknowledgement was lost
            logger.info("Purchase %s was written by an earlier attempt", purchase_id)

        purchase = self._to_purchase(purchase_id, data)
        logger.info("Purchase %s created for post %s by %s", purchase_id, request.postId, session.user_id)
        self.dispatcher.purchase_created(purchase)
        return purchase

    def get_purchase(self, session: Session, purchase_id: str) -> Purchase:
        data = self.db.get_purchase(purchase_id)
        if data is None:
            raise NotFound("Purchase", purchase_id)
        purchase = self._to_purchase(purchase_id, data)
        self.role_of(purchase, session)
        return purchase

    def list_purchases_for_buyer(self, session: Session, status: Optional[OrderStatus] = None) -> List[Purchase]:
        """Orders the session user placed, newest first"""
        return self._list("buyerId", session.user_id, status)

    def list_requests_for_artist(self, session: Session, status: Optional[OrderStatus] = None) -> List[Purchase]:
        """Orders placed on the session user's artwork, newest first"""
        return self._list("artistId", session.user_id, status)

    def _list(self, field: str, user_id: str, status: Optional[OrderStatus]) -> List[Purchase]:
        purchases = [self._to_purchase(p["id"], p) for p in self.db.get_purchases(field, user_id)]
        if status is not None:
            purchases = [p for p in purchases if p.status == status]
        return purchases

    def transition(self, session: Session, purchase_id: str, new_status: OrderStatus) -> Purchase:
        """
        Move a purchase to new_status on behalf of the session user.

        Raises:
            NotFound: If the purchase does not exist
            Unauthorized: If the user is neither the buyer nor the artist
            InvalidTransition: If the move is not in TRANSITIONS for the user's role
            TransientIOError: If the store stayed unavailable through every retry
        """
        new_status = OrderStatus(new_status)
        # One timestamp for every attempt, so a re-read can recognise our own committed write
        now = self.clock()
        purchase, actor = self.retry.run(lambda: self._transition_once(session, purchase_id, new_status, now),
                                         f"move purchase {purchase_id} to {new_status.value}")
        logger.info("Purchase %s moved to %s by %s", purchase_id, new_status.value, actor.value)
        self.dispatcher.status_changed(purchase, actor)
        return purchase

    def _transition_once(self, session: Session, purchase_id: str,
                         new_status: OrderStatus, now: str) -> Tuple[Purchase, ActorRole]:
        for _ in range(self.cas_max_rounds):
            snapshot = self.db.snapshot(PURCHASES, purchase_id)
            if snapshot is None:
                raise NotFound("Purchase", purchase_id)

            purchase = self._to_purchase(snapshot.id, snapshot.to_dict())
            actor = self.role_of(purchase, session)
            if purchase.status == new_status and purchase.updatedAt == now:
                logger.info("Purchase %s already moved to %s by an earlier attempt", purchase_id, new_status.value)
                return purchase, actor
            if not is_valid_transition(purchase.status, new_status, actor):
                raise InvalidTransition(purchase.status.value, new_status.value, actor.value)

            fields = {"status": new_status.value, "updatedAt": now}
            if new_status == OrderStatus.DELIVERED:
                fields["deliveredAt"] = now

            try:
                self.db.update_if_unchanged(PURCHASES, purchase_id, fields, snapshot)
            except PreconditionFailed:
                # Someone else wrote first; re-validate against what they wrote
                logger.warning("Purchase %s changed during transition, re-reading", purchase_id)
                continue

            return purchase.model_copy(update={**fields, "status": new_status}), actor

        raise TransientIOError(f"Purchase {purchase_id} kept changing during transition")

    def confirm(self, session: Session, purchase_id: str) -> Purchase:
        return self.transition(session, purchase_id, OrderStatus.CONFIRMED)

    def ship(self, session: Session, purchase_id: str) -> Purchase:
        return self.transition(session, purchase_id, OrderStatus.SHIPPED)

    def mark_delivered(self, session: Session, purchase_id: str) -> Purchase:
        """Seller's claim of physical delivery; the order waits for the buyer"""
        return self.transition(session, purchase_id, OrderStatus.DELIVERY_CONFIRMATION_PENDING)

    def confirm_delivery(self, session: Session, purchase_id: str) -> Purchase:
        return self.transition(session, purchase_id, OrderStatus.DELIVERED)

    def cancel(self, session: Session, purchase_id: str) -> Purchase:
        return self.transition(session, purchase_id, OrderStatus.CANCELLED)
