"""Custom exceptions for the checkout workflow."""


class CheckoutError(Exception):
    """Base exception for all storefront errors."""

    pass


class ValidationError(CheckoutError):
    """Raised for bad user input. Recoverable and shown inline."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class CardValidationError(ValidationError):
    """Raised when direct card details fail a formatting rule."""

    pass


class AddressNotFoundError(ValidationError):
    """Raised when an address id is not in the user's address list."""

    def __init__(self, address_id: str):
        self.address_id = address_id
        super().__init__(f"Address not found: {address_id}", field="shippingAddress")


class CartChangedError(ValidationError):
    """Raised when the cart changed between reviewing totals and placing the order."""

    def __init__(self, expected: float, actual: float):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Your cart changed since you reviewed it (total is now {actual:.2f}). "
            "Please review your order again."
        )


class CouponError(ValidationError):
    """Raised when a coupon cannot be applied."""

    def __init__(self, message: str):
        super().__init__(message, field="couponCode")


class CouponNotFoundError(CouponError):
    def __init__(self, code: str):
        self.code = code
        super().__init__("Invalid coupon code")


class EmptyCartError(CheckoutError):
    """Raised when submitting an order with no items."""

    def __init__(self):
        super().__init__("Your cart is empty")


class MissingAddressError(CheckoutError):
    """Raised when submitting an order without a shipping address."""

    def __init__(self):
        super().__init__("Please select a shipping address")


class PaymentNotConfirmedError(CheckoutError):
    """Raised when the gateway declined, the user cancelled, or the callback was incomplete."""

    def __init__(self, message: str = "Payment was not confirmed"):
        super().__init__(message)


class PaymentStateError(CheckoutError):
    """Raised on a payment transition that is not allowed from the current state."""

    def __init__(self, action: str, state: str):
        self.action = action
        self.state = state
        super().__init__(f"Cannot {action} a payment that is {state}")


class OrderPersistenceError(CheckoutError):
    """Raised when the order record could not be written. The user should retry."""

    def __init__(self, reason: str | None = None):
        self.reason = reason
        msg = "We could not place your order. Please try again."
        super().__init__(msg)


class OrderNotFoundError(CheckoutError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InvalidStatusTransitionError(ValidationError):
    """Raised when an admin moves an order to a status its current status cannot reach."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change order status from '{current}' to '{requested}'", field="status")


class CartItemNotFoundError(CheckoutError):
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Cart item not found: {item_id}")


class ProductNotFoundError(CheckoutError):
    def __init__(self, product: str):
        self.product = product
        super().__init__(f"Product not found: {product}")


class NotAuthenticatedError(CheckoutError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ForbiddenError(CheckoutError):
    def __init__(self):
        super().__init__("Admin access required")


class DatabaseUnavailableError(CheckoutError):
    """Raised when DATABASE_URL/DATABASE_NAME are not configured."""

    def __init__(self):
        super().__init__("Database is not configured. Set DATABASE_URL and DATABASE_NAME.")
