"""AI validation of detected object instances via PydanticAI."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from pydantic import BaseModel, Field
from pydantic_ai import Agent

from .models import ContentObjectInstance, ValidationResult
from .prompts import format_validation_prompt

logger = logging.getLogger(__name__)


class InstanceVerdict(BaseModel):
    """Structured output requested from the model."""

    valid_indices: list[int] = Field(default_factory=list)
    outlier_indices: list[int] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = ""


class InstanceValidator(Protocol):
    async def validate(
        self, instances: Sequence[ContentObjectInstance], category: str
    ) -> ValidationResult: ...


class AIValidator:
    """Asks an LLM to separate genuine object instances from extraction noise.

    Only the first *max_instances* instances are sent; the rest are kept as
    valid without review. Errors propagate so the caller can fail open.
    """

    def __init__(self, model: str, *, max_instances: int = 40) -> None:
        self._model = model
        self._max_instances = max_instances

    async def validate(
        self, instances: Sequence[ContentObjectInstance], category: str
    ) -> ValidationResult:
        reviewed = list(instances[: self._max_instances])
        unreviewed = list(instances[self._max_instances :])

        prompt = format_validation_prompt(
            category, [instance.model_dump(mode="json") for instance in reviewed]
        )
        agent = Agent(self._model, output_type=InstanceVerdict)
        result = await agent.run(prompt)
        verdict: InstanceVerdict = result.output

        in_range = range(len(reviewed))
        outlier_set = {i for i in verdict.outlier_indices if i in in_range}
        if verdict.valid_indices:
            valid_set = {i for i in verdict.valid_indices if i in in_range} - outlier_set
        else:
            valid_set = set(in_range) - outlier_set

        logger.info(
            "instances validated",
            extra={
                "category": category,
                "reviewed": len(reviewed),
                "valid": len(valid_set),
                "outliers": len(outlier_set),
                "confidence": verdict.confidence,
            },
        )
        return ValidationResult(
            valid_instances=[reviewed[i] for i in sorted(valid_set)] + unreviewed,
            outliers=[reviewed[i] for i in sorted(outlier_set)],
            confidence=verdict.confidence,
            reasoning=verdict.reasoning,
        )
