class RecoveryError(RuntimeError):
    """Base class for selector recovery failures."""


class InvalidInput(RecoveryError, ValueError):
    """Raised when a recovery request is missing required input."""


class ParseFailure(RecoveryError):
    """Raised when markup cannot be turned into an element tree."""


class TargetNotFound(RecoveryError):
    """Raised when neither the selector nor the context locates an element."""


class SelectorSyntaxError(RecoveryError):
    """Raised when a selector cannot be compiled."""


class RerankBackendFailure(RecoveryError):
    """Raised when the generative rerank backend cannot produce a usable answer."""


class ResponseShapeError(RerankBackendFailure):
    """Raised when a model response does not match the required shape."""
