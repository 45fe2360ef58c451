from app.models.user import User, Base
from app.models.listing import Listing, ListingStatus
from app.models.order import Order, OrderEvent, OrderStatus, FulfillmentStatus, OrderEventType
from app.models.invitation_code import InvitationCode
from app.models.audit_log import AuditLog
from app.models.card import Card, GradingCertificate, SalesData

__all__ = [
    'User', 'Base', 'Listing', 'ListingStatus', 'Order', 'OrderEvent', 'OrderStatus',
    'FulfillmentStatus', 'OrderEventType', 'InvitationCode', 'AuditLog',
    'Card', 'GradingCertificate', 'SalesData',
]
