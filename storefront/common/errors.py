
class StorefrontError(Exception):
    code = "internal_error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "message": self.message}


# Validation (400)
class InvalidOrderData(StorefrontError):
    code = "invalid_order_data"
    status_code = 400


class InvalidPaymentData(StorefrontError):
    code = "invalid_payment_data"
    status_code = 400


class InvalidProductData(StorefrontError):
    code = "invalid_product_data"
    status_code = 400


class InvalidQuantity(StorefrontError):
    code = "invalid_quantity"
    status_code = 400


class InvalidVerificationCode(StorefrontError):
    code = "invalid_verification_code"
    status_code = 400


class InvalidCartData(StorefrontError):
    code = "invalid_cart_data"
    status_code = 400


# Not found (404)
class ProductNotFound(StorefrontError):
    code = "product_not_found"
    status_code = 404


class OrderNotFound(StorefrontError):
    code = "order_not_found"
    status_code = 404


class PaymentNotFound(StorefrontError):
    code = "payment_not_found"
    status_code = 404


# State conflicts (400)
class InsufficientStock(StorefrontError):
    code = "insufficient_stock"
    status_code = 400

    def __init__(self, product_id: int, requested: int, available=None):
        super().__init__(f"Insufficient stock for product {product_id}")
        self.product_id = product_id
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["product_id"] = self.product_id
        if self.available is not None:
            data["available"] = self.available
        return data


class OrderAlreadyProcessed(StorefrontError):
    code = "order_already_processed"
    status_code = 400


class PaymentAlreadyExists(StorefrontError):
    code = "payment_already_exists"
    status_code = 400


class PaymentExpired(StorefrontError):
    code = "payment_expired"
    status_code = 400


class PaymentNotVerifiable(StorefrontError):
    code = "payment_not_verifiable"
    status_code = 400
