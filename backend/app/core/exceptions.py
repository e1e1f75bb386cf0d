"""Exceptions raised inside the billing engine.

None of these escape the decision tree: stages absorb ReferenceDataError
into their documented fallback and the orchestrator converts anything
else into a failed ProcessResult.
"""


class BillingEngineError(Exception):
    """Base class for billing engine errors."""


class ReferenceDataError(BillingEngineError):
    """A reference data collaborator failed (timeout, malformed row, ...)."""


class InvalidPatternError(BillingEngineError, ValueError):
    """An ICD-10 pattern is not an exact code or a code prefix with one trailing '*'."""
