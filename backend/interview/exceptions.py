"""
Error taxonomy for the interview session core.
"""


class InterviewError(Exception):
    """Base class for interview errors."""


class QuestionSourceError(InterviewError):
    """Question generation failed or produced no usable question."""
    retryable = True


class ScoringServiceError(InterviewError):
    """The scoring service was unreachable or returned a malformed result."""


class InvalidStateError(InterviewError):
    """The requested operation is not allowed in the current state."""


class ArchiveError(InterviewError):
    """The durable store rejected or failed a read/write."""


class TranscriptionError(InterviewError):
    """The speech transcription provider failed."""
