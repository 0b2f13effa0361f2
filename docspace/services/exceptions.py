# docspace/services/exceptions.py
"""
Errors raised by lifecycle operations (create, move, share, trash).

The resolution path never raises these for missing data; it degrades to
"no permission" instead.
"""


class DocspaceError(Exception):
    pass


class NotFoundError(DocspaceError):
    pass


class DocumentNotFoundError(NotFoundError):
    pass


class GroupNotFoundError(NotFoundError):
    pass


class UserNotFoundError(NotFoundError):
    pass


class SubspaceNotFoundError(NotFoundError):
    pass


class InvalidHierarchyError(DocspaceError):
    pass


class ConcurrentModificationError(DocspaceError):
    pass


class PermissionDeniedError(DocspaceError):
    """Generic refusal. The message never says which grant is missing."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)
