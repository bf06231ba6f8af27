"""Order domain constants.

Status choices for the parent order and for vendor sub-orders, the
transition tables that drive both state machines, and the fulfilment
rank used to derive the parent status from its sub-orders.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    HARVESTING = "harvesting", "Harvesting"
    PACKED = "packed", "Packed"
    QUALITY_CHECK = "quality_check", "Quality check"
    SHIPPED = "shipped", "Shipped"
    IN_TRANSIT = "in_transit", "In transit"
    OUT_FOR_DELIVERY = "out_for_delivery", "Out for delivery"
    DELIVERED = "delivered", "Delivered"
    PARTIALLY_DELIVERED = "partially_delivered", "Partially delivered"
    CANCELLED = "cancelled", "Cancelled"
    DISPUTED = "disputed", "Disputed"
    RETURNED = "returned", "Returned"


class SubOrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    HARVESTING = "harvesting", "Harvesting"
    PACKED = "packed", "Packed"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class PaymentMethod(models.TextChoices):
    COD = "cod", "Cash on delivery"
    ONLINE = "online", "Online"


class ActorRole(models.TextChoices):
    BUYER = "buyer", "Buyer"
    VENDOR = "vendor", "Vendor"
    ADMIN = "admin", "Administrator"
    SYSTEM = "system", "System"
    GATEWAY = "gateway", "Payment gateway"


# ---------------------------------------------------------------------------
# Parent order state machine
# ---------------------------------------------------------------------------

_ESCAPES = {OrderStatus.CANCELLED, OrderStatus.DISPUTED}

VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED} | _ESCAPES,
    OrderStatus.CONFIRMED: {
        OrderStatus.HARVESTING,
        OrderStatus.PACKED,
        OrderStatus.QUALITY_CHECK,
        OrderStatus.SHIPPED,
    }
    | _ESCAPES,
    OrderStatus.HARVESTING: {
        OrderStatus.PACKED,
        OrderStatus.QUALITY_CHECK,
        OrderStatus.SHIPPED,
    }
    | _ESCAPES,
    OrderStatus.PACKED: {OrderStatus.QUALITY_CHECK, OrderStatus.SHIPPED} | _ESCAPES,
    OrderStatus.QUALITY_CHECK: {OrderStatus.SHIPPED} | _ESCAPES,
    OrderStatus.SHIPPED: {
        OrderStatus.IN_TRANSIT,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    }
    | _ESCAPES,
    OrderStatus.IN_TRANSIT: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED}
    | _ESCAPES,
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED} | _ESCAPES,
    OrderStatus.DISPUTED: {OrderStatus.CANCELLED, OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.PARTIALLY_DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.RETURNED: set(),
}

TERMINAL_STATES: set[str] = {
    OrderStatus.DELIVERED,
    OrderStatus.PARTIALLY_DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
}

BUYER_CANCELLABLE_STATES: set[str] = {OrderStatus.PENDING, OrderStatus.CONFIRMED}

# ---------------------------------------------------------------------------
# Vendor sub-order state machine
# ---------------------------------------------------------------------------

SUB_ORDER_TRANSITIONS: dict[str, set[str]] = {
    SubOrderStatus.PENDING: {SubOrderStatus.CONFIRMED, SubOrderStatus.CANCELLED},
    SubOrderStatus.CONFIRMED: {
        SubOrderStatus.HARVESTING,
        SubOrderStatus.PACKED,
        SubOrderStatus.SHIPPED,
        SubOrderStatus.CANCELLED,
    },
    SubOrderStatus.HARVESTING: {
        SubOrderStatus.PACKED,
        SubOrderStatus.SHIPPED,
        SubOrderStatus.CANCELLED,
    },
    SubOrderStatus.PACKED: {SubOrderStatus.SHIPPED, SubOrderStatus.CANCELLED},
    SubOrderStatus.SHIPPED: {SubOrderStatus.DELIVERED},
    SubOrderStatus.DELIVERED: set(),
    SubOrderStatus.CANCELLED: set(),
}

SUB_ORDER_TERMINAL_STATES: set[str] = {
    SubOrderStatus.DELIVERED,
    SubOrderStatus.CANCELLED,
}

# Position of each status along the fulfilment path.  Parent and
# sub-order values share names, so one table serves both.
STAGE_RANK: dict[str, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.CONFIRMED: 1,
    OrderStatus.HARVESTING: 2,
    OrderStatus.PACKED: 3,
    OrderStatus.QUALITY_CHECK: 4,
    OrderStatus.SHIPPED: 5,
    OrderStatus.IN_TRANSIT: 6,
    OrderStatus.OUT_FOR_DELIVERY: 7,
    OrderStatus.DELIVERED: 8,
}

ORDER_NUMBER_MAX_RETRIES = 5


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"


class ReservationState(models.TextChoices):
    HELD = "held", "Held"
    COMMITTED = "committed", "Committed"
    RELEASED = "released", "Released"


class ReservationLineState(models.TextChoices):
    RESERVED = "reserved", "Reserved"
    RELEASED = "released", "Released"
    FULFILLED = "fulfilled", "Fulfilled"
