HANDLE_PREFIX = "SCHAT_"
HANDLE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
HANDLE_LENGTH = 6

DEFAULT_USER_STATUS = "Available"

# Message kinds and delivery states as stored on ``Message``.
MESSAGE_TYPES = {"text", "image"}
MESSAGE_STATUSES = ("sent", "delivered", "read")

# Page size for a chat thread and the user search result cap.
MESSAGE_PAGE_SIZE = 50
SEARCH_LIMIT = 20

__all__ = [
    "HANDLE_PREFIX",
    "HANDLE_ALPHABET",
    "HANDLE_LENGTH",
    "DEFAULT_USER_STATUS",
    "MESSAGE_TYPES",
    "MESSAGE_STATUSES",
    "MESSAGE_PAGE_SIZE",
    "SEARCH_LIMIT",
]
