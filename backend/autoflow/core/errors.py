# autoflow/core/errors.py
"""
Error taxonomy for the generation pipeline.

ValidationError and InvalidRequestError are raised synchronously to the
caller. GenerationError is raised when the external generator fails.
AccountingError is never raised past the pipeline: it is attached to the
result as a warning so the delivered artifact is kept.
"""


class PipelineError(Exception):
    pass


class ValidationError(PipelineError):
    """The document cannot be normalized into an importable workflow."""


class InvalidRequestError(PipelineError):
    """The request was rejected before any credits or generator calls."""


class GenerationError(PipelineError):
    """The external generator failed, timed out, or returned garbage."""


class AccountingError(PipelineError):
    """Deduction failed after a successful generation."""


class InsufficientCreditsError(PipelineError):
    def __init__(self, required: int, available: int, currency: str = "credits"):
        self.required = required
        self.available = available
        self.currency = currency
        unit = "batch credit" if currency == "batch_credits" else "credit"
        super().__init__(
            f"Insufficient {currency}. You need {required} {unit}{'s' if required != 1 else ''} "
            f"but only have {available}."
        )


class RunCancelledError(PipelineError):
    pass


class LedgerUnavailableError(PipelineError):
    """The ledger store could not be read or reserved against."""
