from enum import Enum


class ErrorCode(str, Enum):
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    NOT_EVENT_CREATOR = "NOT_EVENT_CREATOR"
    ALREADY_JOINED = "ALREADY_JOINED"
    NOT_JOINED = "NOT_JOINED"
    EVENT_FULL = "EVENT_FULL"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_IMAGE = "INVALID_IMAGE"
    IMAGE_TOO_LARGE = "IMAGE_TOO_LARGE"
    CAPACITY_BELOW_ATTENDEES = "CAPACITY_BELOW_ATTENDEES"
    STORAGE_ERROR = "STORAGE_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
