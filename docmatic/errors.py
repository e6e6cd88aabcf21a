"""
Error taxonomy for docmatic.

Only genuine failures are exceptions. Validation failures and hook rejections
are normal outcomes that leave the entity unchanged; callers inspect
`entity.errors` or re-query state instead of catching anything.
"""


class DocmaticError(Exception):
    """Base class for all docmatic errors."""


class ConfigurationError(DocmaticError, ValueError):
    """Raised for invalid registrations or unresolvable connection strings."""


class StoreError(DocmaticError):
    """Raised when the document store fails to read or write."""


class CollectionNotFoundError(StoreError):
    """Raised by stores that distinguish a missing collection from an empty one."""

    def __init__(self, collection: str) -> None:
        super().__init__(f"Collection '{collection}' does not exist")
        self.collection = collection
