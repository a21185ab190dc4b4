"""Domain errors raised by the order services.

Validation and not-found errors abort the operation before anything is
written. ``ExternalCollaboratorFailure`` wraps geocoding, accounting and
notification failures; background work logs it instead of re-raising.
"""


class OrderServiceError(Exception):
    """Base class for all domain errors."""


class InvalidCoordinate(OrderServiceError):
    """Latitude or longitude outside the valid range."""

    def __init__(self, lat, lon):
        self.lat = lat
        self.lon = lon
        super().__init__(f"Invalid coordinate ({lat}, {lon})")


class InvalidPostalCode(OrderServiceError):
    """Pincode that does not match the 6-digit regional format."""

    def __init__(self, postal_code):
        self.postal_code = postal_code
        super().__init__(f"Invalid pincode: {postal_code!r}")


class InvalidTransition(OrderServiceError):
    """Unknown target status, or a transition the active policy forbids."""

    def __init__(self, current, target, reason: str = "transition not allowed"):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move order from {current} to {target}: {reason}")


class OrderNotFound(OrderServiceError):
    def __init__(self, lead_id):
        self.lead_id = lead_id
        super().__init__(f"Order {lead_id} not found")


class InvalidRefund(OrderServiceError):
    """Refund larger than the paid amount or against an unpaid record."""

    def __init__(self, amount, paid_amount):
        self.amount = amount
        self.paid_amount = paid_amount
        super().__init__(f"Refund amount {amount} exceeds paid amount {paid_amount}")


class InvalidPayment(OrderServiceError):
    """Payment operation not allowed in the order's current state."""


class InvalidOrderItem(OrderServiceError):
    """Bad quantity, negative price, or an item that is not on the order."""


class ItemNotAvailable(OrderServiceError):
    def __init__(self, item_id):
        self.item_id = item_id
        super().__init__(f"Inventory item {item_id} is not available")


class OrderChangeNotAllowed(OrderServiceError):
    """Address or date change outside the allowed window or status."""


class DocumentNotReady(OrderServiceError):
    def __init__(self, lead_id, kind):
        self.lead_id = lead_id
        self.kind = kind
        super().__init__(f"{kind} for order {lead_id} is not ready yet")


class ExternalCollaboratorFailure(OrderServiceError):
    """Any failure talking to geocoding, accounting or notification services."""

    def __init__(self, collaborator: str, operation: str, detail: str = ""):
        self.collaborator = collaborator
        self.operation = operation
        self.detail = detail
        message = f"{collaborator} {operation} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
