"""
Domain exceptions.

Catalog errors are fatal to the catalog service and propagate unchanged
through the routine engine; the rest belong to the user repository.
"""


class CatalogError(Exception):
    """Base class for catalog failures."""


class CatalogNotFoundError(CatalogError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Catalog file not found: {path}")


class InvalidCatalogDataError(CatalogError):
    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid catalog data in {path}: {reason}")


class CatalogNotLoadedError(CatalogError):
    def __init__(self):
        super().__init__("Catalog has not been loaded")


class ProfileValidationError(ValueError):
    """Raised when a user record fails validation before save."""


class UserNotFoundError(LookupError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class RoutineNotFoundError(LookupError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No routine generated yet for user: {user_id}")
