"""String enums shared by ORM models, schemas and services."""

from enum import Enum


class DraftStatus(str, Enum):
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    CREATING_ORDER = "CREATING_ORDER"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    ACCEPTED = "ACCEPTED"
    PICKEDUP = "PICKEDUP"
    DROP = "DROP"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class RestaurantStatus(str, Enum):
    PREPARING = "PREPARING"
    ALMOST_READY = "ALMOST_READY"
    READY = "READY"


class PastOrderStatus(str, Enum):
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class PaymentMode(str, Enum):
    COD = "COD"
    ONLINE = "ONLINE"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    NOT_COLLECTED = "NOT_COLLECTED"


class SettlementStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class RiderActivity(str, Enum):
    EMPTY = "EMPTY"
    ACCEPTED = "ACCEPTED"
    REACHED = "REACHED"
    PICKEDUP = "PICKEDUP"
    DROP = "DROP"


class EventType(str, Enum):
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_ACCEPTED = "ORDER_ACCEPTED"
    ORDER_READY = "ORDER_READY"
    ORDER_CLAIMED = "ORDER_CLAIMED"
    ORDER_PICKEDUP = "ORDER_PICKEDUP"
    ORDER_DROP = "ORDER_DROP"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_REJECTED = "ORDER_REJECTED"
    RIDER_EXPOSURE_CHANGED = "RIDER_EXPOSURE_CHANGED"


class AppId(str, Enum):
    CUSTOMER = "CUSTOMER"
    RIDER = "RIDER"
    RESTAURANT = "RESTAURANT"


class AlertType(str, Enum):
    FORCE_UPDATE = "force_update"
    OPTIONAL_UPDATE = "optional_update"
    INFO = "info"
    PROMO = "promo"
    MAINTENANCE = "maintenance"
