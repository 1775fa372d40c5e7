"""Custom exceptions for database operations."""


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class DatabaseConnectionError(DatabaseError):
    """Database connection failed or is not configured."""
    pass


class DatabaseConstraintError(DatabaseError):
    """Database constraint violation (duplicate membership, bad role value, etc)."""
    pass


class DatabaseOperationError(DatabaseError):
    """General database operation failed."""
    pass
