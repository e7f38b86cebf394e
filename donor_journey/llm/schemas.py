"""Pydantic schemas for LLM responses.

Field names match the JSON keys the prompts ask for (camelCase), so these
models validate raw model output directly.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator

from ..models.donor import PredictedAction
from ..models.journey import Stage, Transition


class StageClassificationResponse(BaseModel):
    """LLM response for classifying an unstaged donor."""

    stageId: StrictStr = Field(description="Id of the stage the donor belongs in")
    reasoning: Optional[str] = Field(None, description="Why this stage fits")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "stageId": "n1",
                "reasoning": "The donor recently made their first donation and has engaged with welcome emails.",
            }
        }
    )


class StageTransitionResponse(BaseModel):
    """LLM response for a stage transition check."""

    canTransition: StrictBool = Field(description="Whether the donor should move to a next stage")
    nextStageId: Optional[str] = Field(None, description="Id of the next stage, or null when staying")
    reasoning: Optional[str] = Field(None, description="Why the donor should move or stay")

    @field_validator("nextStageId", mode="before")
    @classmethod
    def _non_string_target_is_none(cls, value: Any) -> Optional[str]:
        # Anything that cannot be a stage id leaves the donor in place
        return value if isinstance(value, str) else None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "canTransition": True,
                "nextStageId": "n2",
                "reasoning": "The donor replied to the welcome email and asked about volunteering.",
            }
        }
    )


class ActionPredictionResponse(BaseModel):
    """LLM response listing recommended next actions."""

    actions: list[PredictedAction] = Field(description="Recommended next actions (may be empty)")


class JourneyGraphResponse(BaseModel):
    """Structured output schema for journey generation."""

    nodes: list[Stage] = Field(description="Journey stages")
    edges: list[Transition] = Field(description="Transitions between stages, referencing stage ids")
