class EventPilotError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message is not None:
            self.message = message

    def to_dict(self):
        return {"message": self.message}


class ValidationError(EventPilotError):
    status_code = 400
    message = "Invalid request"

    def __init__(self, message=None, fields=None):
        super().__init__(message)
        self.fields = fields or {}

    def to_dict(self):
        if self.fields:
            return {"message": self.fields}
        return {"message": self.message}


class MissingFieldsError(ValidationError):
    def __init__(self, fields):
        super().__init__(
            "Missing required fields",
            fields={f: ["This field is required"] for f in fields},
        )


class InvalidCouponError(ValidationError):
    message = "Invalid coupon code"


class ExpiredOrExhaustedError(ValidationError):
    message = "Coupon is no longer available"


class NotFoundError(EventPilotError):
    status_code = 404
    message = "Not found"


class ConflictError(EventPilotError):
    status_code = 409
    message = "Conflict"


class AuthenticationError(EventPilotError):
    status_code = 401
    message = "Invalid email or password"


class UnauthorizedError(EventPilotError):
    status_code = 403
    message = "Unauthorized"


class ExternalServiceError(EventPilotError):
    status_code = 500
    message = "External service error"


class GmailConnectionError(ExternalServiceError):
    def __init__(self, message=None, code=None):
        super().__init__(message)
        self.code = code
