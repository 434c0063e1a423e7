"""Exception taxonomy for the configurator engine.

The pure components (resolver, selection, pricing) never raise for an
absent selection or an unknown id. Only operations with persistence side
effects (bulk import, quotes) raise these.
"""

from typing import Optional

__all__ = [
    "ConfiguratorError",
    "ValidationError",
    "ImportValidationError",
    "NotFoundError",
    "OwnershipError",
    "QuoteValidationError",
    "StorageError",
]


class ConfiguratorError(Exception):
    """Base class for all configurator errors."""

    code = "CONFIGURATOR_ERROR"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class ValidationError(ConfiguratorError):
    """A request was rejected before touching the store."""

    code = "VALIDATION_ERROR"
    status_code = 400


class ImportValidationError(ValidationError):
    """The import payload was rejected before touching the store."""


class NotFoundError(ConfiguratorError):
    """A configurator, category or quote does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} '{identifier}' not found"
        super().__init__(message)
        self.resource = resource


class OwnershipError(ConfiguratorError):
    """The configurator belongs to a different client."""

    code = "UNAUTHORIZED"
    status_code = 401


class QuoteValidationError(ValidationError):
    pass


class StorageError(ConfiguratorError):
    """A storage failure aborted a transactional operation."""

    code = "IMPORT_ERROR"
    status_code = 500
