"""Template interpolation models."""

from typing import Any, Dict, List
from pydantic import ConfigDict, Field

from .base import DomainModel


class TemplateContext(DomainModel):
    """Values available to ``${inputs.*}`` and ``${metadata.*}`` references.

    Passed by value into interpolation calls; frozen so a pass cannot mutate
    the caller's snapshot through it.
    """

    model_config = ConfigDict(frozen=True)

    parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Parameter name -> current value"
    )

    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Document metadata (title, author, ...)"
    )


class InterpolationResult(DomainModel):
    """Interpolated text plus a record of what was (and was not) replaced."""

    output: str

    replaced_variables: List[str] = Field(default_factory=list)

    missing_variables: List[str] = Field(
        default_factory=list,
        description="References that had no value (rendered as NULL or left intact)"
    )

    warnings: List[str] = Field(default_factory=list)
