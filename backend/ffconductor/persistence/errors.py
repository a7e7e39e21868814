"""
Persistence-specific errors.
"""


class PersistenceError(Exception):
    """Base exception for persistence operations."""

    pass


class SchemaError(PersistenceError):
    """Schema migration or validation failed."""

    pass


class DuplicateKeyError(PersistenceError):
    """A unique field already holds the given value in the collection."""

    def __init__(self, collection: str, field: str, value: str):
        self.collection = collection
        self.field = field
        self.value = value
        super().__init__(
            f"Duplicate value for unique field '{field}' in '{collection}': {value}"
        )

