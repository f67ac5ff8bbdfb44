class ErrorCode:
    ACCESS_TOKEN_REQUIRED = "access_token_required"
    ACCESS_DENIED = "access_denied"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    PAYMENT_NOT_FOUND = "payment_not_found"
    MERCHANT_NOT_FOUND = "merchant_not_found"
    STATE_CONFLICT = "state_conflict"
    INVALID_SIGNATURE = "invalid_signature"
    DATABASE_ERROR = "database_error"
    SECRET_DECRYPTION_FAILED = "secret_decryption_failed"
    INTERNAL_SERVER_ERROR = "internal_server_error"
