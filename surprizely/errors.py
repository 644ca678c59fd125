class ShopError(Exception):
    """Base class for errors the HTTP layer turns into JSON responses."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(ShopError):
    status_code = 400


class NotFoundError(ShopError):
    status_code = 404

    def __init__(self, entity: str, entity_id=None):
        label = f"{entity} {entity_id} not found" if entity_id is not None else f"{entity} not found"
        super().__init__(label)
        self.entity = entity
        self.entity_id = entity_id


class RateLimitError(ShopError):
    status_code = 429


class ExternalServiceError(ShopError):
    status_code = 502


class PersistenceError(ShopError):
    """A data file could not be written. In-memory state stays authoritative."""
