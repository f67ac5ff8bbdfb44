class ErrorMessage:
    # ---------- Auth / Access ----------
    SERVER_ERROR = "Internal server error"
    DATABASE_FAILURE = "Database operation failed"
    AUTH_CONTEXT_MISSING = "Authentication context missing"
    MERCHANT_NOT_AUTHENTICATED = "Merchant is not authenticated"
    MERCHANT_ID_MISSING = "Authenticated merchant id missing"
    ACCESS_DENIED = "Access denied"

    # ---------- Generic ----------
    VALIDATION_FAILED = "Validation failed"

    # ---------- Payments ----------
    PAYMENT_NOT_FOUND = "Payment not found"
    PAYMENT_NOT_PENDING = "Payment is not in pending status"
    INVALID_AMOUNT = "Amount must be greater than 0"
    UNSUPPORTED_CURRENCY = "Unsupported currency"
    UNSUPPORTED_NETWORK = "Unsupported network"
    UNSUPPORTED_PAYMENT_METHOD = "Unsupported payment method"
    CUSTOMER_REFERENCE_REQUIRED = "Customer reference is required"

    # ---------- Merchants ----------
    MERCHANT_NOT_FOUND = "Merchant not found"
    SECRET_ALREADY_REVEALED = "API secret has already been revealed"
    SECRET_DECRYPTION_FAILED = "Stored secret could not be decrypted"

    # ---------- Webhooks ----------
    INVALID_SIGNATURE = "Invalid webhook signature"
    MISSING_PAYLOAD_OR_SIGNATURE = "Missing payload or signature"
    INVALID_INBOUND_STATUS = "Status must be one of confirmed, failed, expired"


class SuccessMessage:
    SIGNATURE_VALID = "Signature is valid"
    SIGNATURE_INVALID = "Signature is invalid"
