"""Exceptions raised by the donor journey analysis pipeline.

Two scopes matter to callers:
- Batch-scoped: ``JourneyGraphNotFoundError`` (and its ``EmptyJourneyGraphError``
  subclass) aborts ``analyze_donors`` before any donor is touched.
- Donor-scoped: everything else is caught at the per-donor boundary and
  recorded on that donor's result entry.

``LLMResponseError`` (output could not be parsed into the expected shape) is
kept separate from ``UnknownStageError`` (output parsed fine but names a stage
the graph does not have). The first usually means the prompt or model needs
attention, the second that the journey graph changed.
"""

from typing import Optional


class DonorJourneyError(Exception):
    """Base class for pipeline errors."""


class JourneyGraphNotFoundError(DonorJourneyError):
    """Organization has no donor journey graph configured."""

    def __init__(self, organization_id: str, message: Optional[str] = None):
        self.organization_id = organization_id
        super().__init__(
            message or f"Donor journey graph not found for organization {organization_id}. Analysis cannot proceed."
        )


class EmptyJourneyGraphError(JourneyGraphNotFoundError):
    """Organization has a journey graph, but it has no stages."""

    def __init__(self, organization_id: str):
        super().__init__(
            organization_id,
            f"Donor journey graph for organization {organization_id} has no stages. Analysis cannot proceed.",
        )


class InvalidJourneyGraphError(DonorJourneyError):
    """Journey graph data failed structural validation."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        preview = "; ".join(self.errors[:5])
        more = f" (+{len(self.errors) - 5} more)" if len(self.errors) > 5 else ""
        super().__init__(f"Invalid donor journey graph: {preview}{more}")


class DonorNotFoundError(DonorJourneyError):
    """Donor record does not exist in the requesting organization."""

    def __init__(self, donor_id: str):
        self.donor_id = donor_id
        super().__init__(f"Donor {donor_id} not found.")


class UnknownStageError(DonorJourneyError):
    """A stage name or stage id does not resolve against the journey graph."""

    def __init__(self, message: str, stage: Optional[str] = None):
        self.stage = stage
        super().__init__(message)


class LLMResponseError(DonorJourneyError):
    """LLM output could not be parsed or did not match the expected shape."""

    def __init__(self, message: str, raw_text: Optional[str] = None):
        self.raw_text = raw_text
        super().__init__(message)
