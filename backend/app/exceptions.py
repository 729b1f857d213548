"""
Engine error taxonomy.

Services raise these; the FastAPI layer maps them to status codes.
Messages are user-facing and name the offending field or id.
"""


class EngineError(Exception):
    """Base class for all recommendation/analytics engine errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidRequest(EngineError):
    """Caller supplied an unsatisfiable combination of parameters."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class MissingBaseProduct(InvalidRequest):
    """'similar' recommendations were requested without a base product."""

    def __init__(self):
        super().__init__(
            "based_on_product_id is required for 'similar' recommendations",
            field="based_on_product_id",
        )


class NotFound(EngineError):
    """A tenant-scoped entity (client, base product) does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found")


class CollaboratorUnavailable(EngineError):
    """
    A data gateway or the ranking collaborator failed.

    Retryable by the caller; the engine performs no internal retry for
    gateways. Ranking failures never escape the ranking layer.
    """

    status_code = 503

    def __init__(self, collaborator: str, detail: str = "temporarily unavailable"):
        self.collaborator = collaborator
        super().__init__(f"{collaborator} is {detail}")
