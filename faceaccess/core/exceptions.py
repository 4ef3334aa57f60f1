"""
Domain errors raised by the access-control services.

Routers translate these into HTTP responses; the validation pipeline turns
them into the matching response variant and audit entry.
"""


class AccessControlError(Exception):
    """Base class for all domain errors"""
    pass


class InvalidEmbeddingError(AccessControlError):
    """Raised when a face embedding is missing or malformed (client error)"""
    pass


class EmbeddingLookupError(AccessControlError):
    """Raised when a stored embedding population cannot be scanned"""

    def __init__(self, population: str, message: str):
        super().__init__(f"Failed to search {population} faces: {message}")
        self.population = population


class StatusCatalogError(AccessControlError):
    """Raised when an essential status row is missing from the catalog"""
    pass


class NotFoundError(AccessControlError):
    pass


class ConflictError(AccessControlError):
    pass


class ActionNotImplementedError(AccessControlError):
    """Raised for administrative actions that are declared but not available yet"""
    pass
