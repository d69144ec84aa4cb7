"""Disruption budget model."""
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from strata.models.meta import Resource


class SelectorRequirement(BaseModel):
    model_config = ConfigDict(extra='forbid')

    key: str
    operator: str = "In"
    values: List[str] = Field(default_factory=list)


class LabelSelector(BaseModel):
    model_config = ConfigDict(extra='forbid')

    match_labels: Dict[str, str] = Field(default_factory=dict)
    match_expressions: List[SelectorRequirement] = Field(default_factory=list)


class DisruptionBudgetSpec(BaseModel):
    model_config = ConfigDict(extra='forbid')

    max_unavailable: int = 1
    selector: LabelSelector = Field(default_factory=LabelSelector)


class DisruptionBudget(Resource):
    """Limits voluntary disruption of the pools backing an HA volume."""

    kind = "DisruptionBudget"

    spec: DisruptionBudgetSpec = Field(default_factory=DisruptionBudgetSpec)
