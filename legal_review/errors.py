"""
Error taxonomy for the review pipeline.

Every failure surfaced by the service layer is a ReviewError subclass carrying a
human-readable message. The HTTP layer maps each family to a status code
(see main.py) and the command clients re-raise them as CommandError.

- ValidationError: bad input, rejected before any external call
- PreconditionError: the document is in the wrong state for the request
- NotFoundError: the record does not exist (or was deleted mid-operation)
- EngineError / PayloadError: the analysis engine failed or answered garbage
- ExtractionError: PDF text extraction failed
- PersistenceError: the database refused to commit an operation
"""


class ReviewError(Exception):
    """Base class for all expected pipeline failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(ReviewError):
    """Raised for invalid ids, equal comparison ids, unknown enum values."""
    pass


class PreconditionError(ReviewError):
    """Raised when a document's state does not permit the requested operation."""
    pass


class InvalidTransitionError(PreconditionError):
    """Raised when a status transition is not allowed by the state machine."""

    def __init__(self, current: str, target: str, reason: str = None):
        message = f"Cannot move document from '{current}' to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.current = current
        self.target = target


class StaleStatusError(PreconditionError):
    """
    Raised when a compare-and-set status update finds a different status
    than the one the caller observed (another operation got there first).
    """
    pass


class NotFoundError(ReviewError):
    pass


class DocumentNotFoundError(NotFoundError):
    def __init__(self, document_id: str):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id


class TemplateNotFoundError(NotFoundError):
    def __init__(self, template_id: str):
        super().__init__(f"Template {template_id} not found")
        self.template_id = template_id


class EngineError(ReviewError):
    """The analysis engine was unreachable, timed out, or returned an error."""
    pass


class PayloadError(EngineError):
    """The analysis engine answered, but the payload failed schema validation."""
    pass


class ExtractionError(ReviewError):
    """PDF text extraction failed."""
    pass


class PersistenceError(ReviewError):
    """The database failed while committing an operation's records."""
    pass
