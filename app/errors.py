class SplitError(Exception):
    """Base class for every failure the pipeline reports to its caller."""

    kind = "split_error"
    status_code = 500

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.message, "kind": self.kind}
        if self.details:
            body["details"] = self.details
        return body


class ValidationInputError(SplitError):
    kind = "invalid_input"
    status_code = 400


class ExtractionError(SplitError):
    """The vision model replied with something that is not a Receipt."""

    kind = "extraction_failed"


class ReasoningError(SplitError):
    """The reasoning model replied with something that is not a SplitPlan."""

    kind = "reasoning_failed"


class UpstreamUnavailable(SplitError):
    """Inference provider, broker or funding failure."""

    kind = "upstream_unavailable"


class InvariantViolation(SplitError):
    """A parsed plan whose numbers do not add up."""

    kind = "invariant_violation"
