"""Template registry - maps an email type to its template class.

Each template renders {"subject", "html"} from an order email context
built by app.services.email_service.
"""

from app.emails.delivery_exception import DeliveryExceptionTemplate
from app.emails.order_confirmation import OrderConfirmationTemplate
from app.emails.order_delivered import OrderDeliveredTemplate
from app.emails.order_in_transit import OrderInTransitTemplate
from app.emails.order_shipped import OrderShippedTemplate
from app.emails.seller_order_notification import SellerOrderNotificationTemplate

TEMPLATE_REGISTRY: dict[str, type] = {
    template.email_type: template
    for template in (
        OrderConfirmationTemplate,
        SellerOrderNotificationTemplate,
        OrderShippedTemplate,
        OrderInTransitTemplate,
        OrderDeliveredTemplate,
        DeliveryExceptionTemplate,
    )
}


def get_template(email_type: str):
    template_cls = TEMPLATE_REGISTRY.get(email_type)
    if template_cls is None:
        raise ValueError(f"No template registered for email type: {email_type}")
    return template_cls
