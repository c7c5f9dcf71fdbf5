"""
Error types raised by the group store.

Identifier and allocation errors are unrecoverable and propagate to the caller.
Directory errors are raised by directory implementations and are recovered
by the mirror, so store callers never see them.
"""


class GroupStoreError(Exception):
    """Base class for group store errors."""
    pass


class MalformedIdentifier(GroupStoreError, ValueError):
    """Raised when a group identifier cannot be encoded or decoded."""
    pass


class AllocationFailure(GroupStoreError, RuntimeError):
    """Raised when no secure random source can produce a group identifier."""
    pass


class DirectoryResolutionFailure(GroupStoreError):
    """Raised when a directory entry cannot be resolved or created."""
    pass


class ConcurrentRosterUpdate(GroupStoreError):
    """Raised when a roster edit keeps losing to concurrent writers."""
    pass
