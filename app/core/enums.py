from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"
    VENDOR = "vendor"

    def __str__(self):
        return self.value


class OrderStatus(str, Enum):
    PENDING = "pending"
    ORDER_PLACED = "order_placed"
    VENDOR_ACCEPTED = "vendor_accepted"
    PAYMENT_DONE = "payment_done"
    ORDER_CONFIRMED = "order_confirmed"
    TRUCK_LOADING = "truck_loading"
    IN_TRANSIT = "in_transit"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    def __str__(self):
        return self.value


class ItemCategory(str, Enum):
    CEMENT = "cement"
    IRON = "iron"
    CONCRETE_MIXER = "concrete_mixer"
    OTHER = "other"

    def __str__(self):
        return self.value


class ChangeActor(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    VENDOR = "vendor"
    SYSTEM = "system"

    def __str__(self):
        return self.value


class ChangeField(str, Enum):
    ADDRESS = "address"
    DELIVERY_DATE = "delivery_date"

    def __str__(self):
        return self.value


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESSFUL = "successful"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"

    def __str__(self):
        return self.value


class PaymentType(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    UPI = "upi"
    NET_BANKING = "net_banking"
    WALLET = "wallet"
    CASH_ON_DELIVERY = "cash_on_delivery"
    BANK_TRANSFER = "bank_transfer"
    MANUAL_UTR = "manual_utr"

    def __str__(self):
        return self.value


class PaymentMode(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    CASH_ON_DELIVERY = "cash_on_delivery"

    def __str__(self):
        return self.value


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"
    RETURNED = "returned"

    def __str__(self):
        return self.value


class DocumentKind(str, Enum):
    QUOTE = "quote"
    SALES_ORDER = "sales_order"
    INVOICE = "invoice"

    def __str__(self):
        return self.value


class DocumentStatus(str, Enum):
    READY = "ready"
    PENDING = "pending"
    FAILED = "failed"
    NOT_REQUESTED = "not_requested"

    def __str__(self):
        return self.value


class SyncOutcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    MISSING_PREREQUISITE = "missing_prerequisite"
    FAILED = "failed"

    def __str__(self):
        return self.value


class SideEffectStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    FAILED = "failed"

    def __str__(self):
        return self.value


class TransitionPolicy(str, Enum):
    PERMISSIVE = "permissive"
    FORWARD_ONLY = "forward_only"

    def __str__(self):
        return self.value


class AuditAction(str, Enum):
    CREATE_CART = "create_cart"
    ADD_ITEM = "add_item"
    REMOVE_ITEM = "remove_item"
    REMOVE_CART = "remove_cart"
    PLACE_ORDER = "place_order"
    UPDATE_STATUS = "update_status"
    CHANGE_ADDRESS = "change_address"
    CHANGE_DELIVERY_DATE = "change_delivery_date"
    RECORD_PAYMENT = "record_payment"
    CONFIRM_PAYMENT = "confirm_payment"
    REFUND_PAYMENT = "refund_payment"
    UPDATE_DELIVERY = "update_delivery"
    GENERATE_DOCUMENT = "generate_document"
    REGISTER = "register"
    LOGIN = "login"

    def __str__(self):
        return self.value
