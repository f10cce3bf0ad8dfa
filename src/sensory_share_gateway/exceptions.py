class GatewayError(Exception):
    """Base class. `status_code` is what the HTTP layer answers with."""

    status_code: int = 500

    def __init__(self, message: str = "", **details):
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(GatewayError):
    pass


class DatabaseError(GatewayError):
    pass


class ValidationError(GatewayError):
    status_code = 400


class ConflictError(GatewayError):
    status_code = 409


class PermissionDeniedError(GatewayError):
    status_code = 403


class NotFoundError(GatewayError):
    status_code = 404


class CapacityError(GatewayError):
    """Квота хранилища исчерпана. В details: remaining, requested, total (human readable)."""

    status_code = 400


class SlugExhaustedError(GatewayError):
    """Не удалось подобрать свободный slug. Клиент может повторить запрос целиком."""

    status_code = 500
    retryable = True


class UpstreamTransferError(GatewayError):
    status_code = 502
