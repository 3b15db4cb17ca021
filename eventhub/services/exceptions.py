from eventhub.services.error_codes import ErrorCode


class ServiceError(Exception):
    default_code: ErrorCode = ErrorCode.SERVER_ERROR

    def __init__(self, message: str | None = None, code: str | None = None) -> None:
        self.code = code or self.default_code.value
        self.message = message or self.code
        super().__init__(self.message)


class NotFoundError(ServiceError):
    default_code = ErrorCode.EVENT_NOT_FOUND


class ForbiddenError(ServiceError):
    default_code = ErrorCode.NOT_EVENT_CREATOR


class MembershipError(ServiceError):
    pass


class AlreadyMemberError(MembershipError):
    default_code = ErrorCode.ALREADY_JOINED


class NotMemberError(MembershipError):
    default_code = ErrorCode.NOT_JOINED


class EventFullError(MembershipError):
    default_code = ErrorCode.EVENT_FULL


class ValidationError(ServiceError):
    default_code = ErrorCode.VALIDATION_ERROR


class StorageError(ServiceError):
    default_code = ErrorCode.STORAGE_ERROR
