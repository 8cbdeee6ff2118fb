import logging
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from enum import Enum
from html import escape
from typing import Any, Dict, Optional, Tuple

from models.purchase import ActorRole, OrderStatus, Purchase
from services.errors import NotificationDeliveryFailed

logger = logging.getLogger(__name__)


class TemplateKind(str, Enum):
    PURCHASE_REQUEST = "purchase_request"
    PURCHASE_RECEIPT = "purchase_receipt"
    STATUS_UPDATE = "status_update"


@dataclass
class Notification:
    recipient_email: str
    recipient_name: str
    kind: TemplateKind
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NotificationResult:
    success: bool
    message_id: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "messageId": self.message_id, "message": self.message}


# What the buyer is told for each status the seller sets
BUYER_STATUS_MESSAGES = {
    OrderStatus.CONFIRMED: "Your purchase request has been confirmed by the artist.",
    OrderStatus.SHIPPED: "Your artwork has been shipped!",
    OrderStatus.DELIVERY_CONFIRMATION_PENDING:
        "Your artwork has been delivered! Please confirm receipt in the app.",
    OrderStatus.DELIVERED: "Your artwork delivery has been confirmed!",
    OrderStatus.CANCELLED: "Your purchase request has been cancelled.",
}

# What the artist is told when the buyer acts
ARTIST_STATUS_MESSAGES = {
    OrderStatus.DELIVERED: "The buyer has confirmed receipt of your artwork. This order is complete.",
}

_FOOTER = """
          <p style="margin-top: 30px; color: #666; font-size: 12px;">
            This is an automated email from ArtConnect. Please do not reply to this email.
          </p>
        </div>"""


def format_price(price: Any) -> str:
    try:
        return f"₹{float(price):,g}"
    except (TypeError, ValueError):
        return f"₹{price}"


def status_label(status: str) -> str:
    return status.replace("_", " ").capitalize()


def _artwork_box(title: str, *lines: str) -> str:
    body = "".join(f"\n            <p>{line}</p>" for line in lines)
    return f"""
          <div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
            <h3 style="color: #111811; margin-top: 0;">{title}</h3>{body}
          </div>"""


def render(notification: Notification) -> Tuple[str, str]:
    """Build the subject line and HTML body for a notification"""
    safe = {k: escape(str(v)) for k, v in notification.fields.items() if v is not None}
    title = safe.get("artworkTitle", "Untitled")
    name = escape(notification.recipient_name or "")
    price_line = "<strong>Price:</strong> " + escape(format_price(notification.fields.get("price")))
    opening = '        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'

    if notification.kind == TemplateKind.PURCHASE_REQUEST:
        subject = f"New Purchase Request: {notification.fields.get('artworkTitle', 'Untitled')}"
        box = _artwork_box(title, price_line)
        html = f"""{opening}
          <h2 style="color: #111811;">New Purchase Request</h2>
          <p>Hello!</p>
          <p>You have received a new purchase request for your artwork:</p>
          {box}
          <h3 style="color: #111811;">Buyer Details:</h3>
          <ul style="line-height: 1.8;">
            <li><strong>Name:</strong> {safe.get('buyerName', '')}</li>
            <li><strong>Email:</strong> {safe.get('buyerEmail', '')}</li>
            <li><strong>Phone:</strong> {safe.get('buyerPhone', '')}</li>
          </ul>
          <p>Please log in to ArtConnect to view the complete purchase request and update its status.</p>{_FOOTER}"""
        return subject, html

    if notification.kind == TemplateKind.PURCHASE_RECEIPT:
        subject = f"Purchase Request Confirmed: {notification.fields.get('artworkTitle', 'Untitled')}"
        box = _artwork_box(title, "<strong>Artist:</strong> " + safe.get("artistName", "Artist"), price_line)
        html = f"""{opening}
          <h2 style="color: #111811;">Purchase Request Confirmed</h2>
          <p>Hello {name}!</p>
          <p>Your purchase request has been successfully submitted.</p>
          {box}
          <p>The artist will review your request and contact you soon. You can track your purchase status in the ArtConnect app.</p>{_FOOTER}"""
        return subject, html

    status = str(notification.fields.get("status", ""))
    messages = ARTIST_STATUS_MESSAGES if notification.fields.get("audience") == ActorRole.SELLER.value \
        else BUYER_STATUS_MESSAGES
    try:
        line = messages.get(OrderStatus(status), "Your order status has been updated.")
    except ValueError:
        line = "Your order status has been updated."
    subject = f"Order Update: {notification.fields.get('artworkTitle', 'Untitled')}"
    box = _artwork_box(title, "<strong>Status:</strong> " + escape(status_label(status)))
    html = f"""{opening}
          <h2 style="color: #111811;">Order Status Update</h2>
          <p>Hello {name}!</p>
          <p>{line}</p>
          {box}
          <p>You can view more details in the ArtConnect app.</p>{_FOOTER}"""
    return subject, html


class EmailNotifier:
    """Sends templated HTML email over SMTP with STARTTLS"""

    def __init__(self, host: Optional[str], port: int, user: Optional[str], password: Optional[str],
                 sender_name: str = "ArtConnect", timeout: float = 10.0):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender_name = sender_name
        self.timeout = timeout
        if not self.configured:
            logger.warning("Email service not configured. Set EMAIL_HOST, EMAIL_USER, and EMAIL_PASS in .env")

    @property
    def configured(self) -> bool:
        return bool(self.host and self.user and self.password)

    def send(self, notification: Notification) -> NotificationResult:
        """
        Deliver one notification.

        Returns:
            A failed result without raising when SMTP is not configured or the
            recipient address is missing

        Raises:
            NotificationDeliveryFailed: If the SMTP exchange fails
        """
        if not self.configured or not notification.recipient_email:
            logger.info("Email service not available or recipient missing, skipping %s", notification.kind.value)
            return NotificationResult(success=False, message="Email service not configured")

        subject, html = render(notification)
        msg = EmailMessage()
        msg["From"] = formataddr((self.sender_name, self.user))
        msg["To"] = notification.recipient_email
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain=self.host)
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.starttls()
                smtp.login(self.user, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationDeliveryFailed(notification.recipient_email, str(e)) from e

        logger.info("Sent %s email to %s", notification.kind.value, notification.recipient_email)
        return NotificationResult(success=True, message_id=msg["Message-ID"])


class NotificationDispatcher:
    """
    Fire-and-forget side channel for order events. Called after the order write
    has committed; delivery failures are logged and never propagate.
    """

    def __init__(self, notifier: EmailNotifier):
        self.notifier = notifier

    def dispatch(self, notification: Notification) -> NotificationResult:
        try:
            result = self.notifier.send(notification)
        except NotificationDeliveryFailed as e:
            logger.warning("Notification failed (non-critical): %s", e.message)
            return NotificationResult(success=False, message=e.reason)

        if not result.success:
            logger.info("Notification to %s not sent: %s", notification.recipient_email, result.message)
        return result

    def purchase_created(self, purchase: Purchase) -> Dict[str, bool]:
        """Tell the artist about the new request and send the buyer a receipt"""
        common = {
            "artworkTitle": purchase.artworkTitle,
            "price": purchase.price,
        }
        artist_result = self.dispatch(Notification(
            recipient_email=purchase.artistEmail,
            recipient_name=purchase.artistName,
            kind=TemplateKind.PURCHASE_REQUEST,
            fields={**common, "buyerName": purchase.buyerName, "buyerEmail": purchase.buyerEmail,
                    "buyerPhone": purchase.buyerPhone},
        ))
        buyer_result = self.dispatch(Notification(
            recipient_email=purchase.buyerEmail,
            recipient_name=purchase.buyerName,
            kind=TemplateKind.PURCHASE_RECEIPT,
            fields={**common, "artistName": purchase.artistName},
        ))
        return {"artistEmailSent": artist_result.success, "buyerEmailSent": buyer_result.success}

    def status_changed(self, purchase: Purchase, actor: ActorRole) -> NotificationResult:
        """Notify whichever party did not make the change"""
        if actor == ActorRole.SELLER:
            email, name, audience = purchase.buyerEmail, purchase.buyerName, ActorRole.BUYER
        else:
            email, name, audience = purchase.artistEmail, purchase.artistName, ActorRole.SELLER

        return self.dispatch(Notification(
            recipient_email=email,
            recipient_name=name,
            kind=TemplateKind.STATUS_UPDATE,
            fields={"artworkTitle": purchase.artworkTitle, "status": purchase.status.value,
                    "audience": audience.value},
        ))
