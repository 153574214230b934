"""Error taxonomy for the conversation engine.

Only ``ValidationError`` and ``SessionNotFound`` ever reach callers of the
public surface. The rest are raised by collaborators and absorbed at the
engine/extractor boundary, where they select a degraded path.
"""


class KindredError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(KindredError, ValueError):
    """A memory record failed validation. Nothing was written."""


class EmbeddingError(KindredError):
    """The embedding provider failed or returned an unusable vector."""


class ExtractionFailure(KindredError):
    """A single content item could not be turned into memories."""


class RetrievalUnavailable(KindredError):
    """The memory store could not be queried."""


class GenerationTimeout(KindredError):
    """The language-generation call exceeded its time budget."""


class GenerationProviderError(KindredError):
    """The language-generation provider failed or returned nothing usable."""


class CancelledGeneration(KindredError):
    """A generation was superseded by a newer user turn (barge-in)."""


class SessionNotFound(KindredError, KeyError):
    """No live session exists for the given id."""
