# gateway/core/exceptions.py
from gateway.core.errors import ErrorCode
from gateway.core.messages import ErrorMessage

class GlobalException(Exception):
    status_code: int
    error_code: str
    message: str

    def __init__(self, message: str | None = None):
        if message:
            self.message = message
        super().__init__(self.message)


class ResourceNotFound(GlobalException):
    status_code = 404
    error_code = ErrorCode.NOT_FOUND
    message = "Requested resource not found"


class PaymentNotFound(ResourceNotFound):
    error_code = ErrorCode.PAYMENT_NOT_FOUND
    message = ErrorMessage.PAYMENT_NOT_FOUND


class MerchantNotFound(ResourceNotFound):
    error_code = ErrorCode.MERCHANT_NOT_FOUND
    message = ErrorMessage.MERCHANT_NOT_FOUND


class ValidationException(GlobalException):
    status_code = 400
    error_code = ErrorCode.VALIDATION_ERROR
    message = "Validation failed"

class StateConflict(GlobalException):
    status_code = 409
    error_code = ErrorCode.STATE_CONFLICT
    message = ErrorMessage.PAYMENT_NOT_PENDING

class AccessDenied(GlobalException):
    status_code = 403
    error_code = ErrorCode.ACCESS_DENIED
    message = ErrorMessage.ACCESS_DENIED

class InvalidSignature(GlobalException):
    status_code = 401
    error_code = ErrorCode.INVALID_SIGNATURE
    message = ErrorMessage.INVALID_SIGNATURE

class PersistenceError(GlobalException):
    status_code = 500
    error_code = ErrorCode.DATABASE_ERROR
    message = ErrorMessage.DATABASE_FAILURE

class SecretDecryptionError(GlobalException):
    status_code = 500
    error_code = ErrorCode.SECRET_DECRYPTION_FAILED
    message = ErrorMessage.SECRET_DECRYPTION_FAILED
