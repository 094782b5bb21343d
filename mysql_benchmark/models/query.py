"""
Query Definition Models

Defines Pydantic models for the benchmark query file:
- Parameter specifications (how each placeholder value is produced)
- Query definitions (identity, statement, weight, parameters)
"""

from typing import Annotated, Any, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class IntParameter(BaseModel):
    """Uniform random integer in ``[min, max]``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["int"] = "int"
    min: int = Field(0, description="Lower bound (inclusive)")
    max: int = Field(..., description="Upper bound (inclusive)")

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.max < self.min:
            raise ValueError(f"max ({self.max}) must be >= min ({self.min})")
        return self


class FloatParameter(BaseModel):
    """Uniform random float in ``[min, max]``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["float"] = "float"
    min: float = Field(0.0, description="Lower bound")
    max: float = Field(..., description="Upper bound")

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.max < self.min:
            raise ValueError(f"max ({self.max}) must be >= min ({self.min})")
        return self


class RangeParameter(BaseModel):
    """Sequential integers from ``start`` to ``stop`` (inclusive), wrapping around."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["range"] = "range"
    start: int = Field(0, description="First value")
    stop: int = Field(..., description="Last value (inclusive)")
    step: int = Field(1, ge=1, description="Increment between values")

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.stop < self.start:
            raise ValueError(f"stop ({self.stop}) must be >= start ({self.start})")
        return self


class ListParameter(BaseModel):
    """Uniform random choice from a fixed list of values."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["list"] = "list"
    values: List[Any] = Field(..., min_length=1, description="Candidate values")


class StringParameter(BaseModel):
    """Random ASCII alphanumeric string."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["string"] = "string"
    length: int = Field(8, ge=1, le=65535, description="String length")


ParameterSpec = Annotated[
    Union[IntParameter, FloatParameter, RangeParameter, ListParameter, StringParameter],
    Field(discriminator="type"),
]


class QueryDefinition(BaseModel):
    """
    A single weighted benchmark query as read from the query file.

    Placeholders use the driver's ``%s`` paramstyle; one parameter spec is
    required per placeholder.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., min_length=1, description="Stable query identifier")
    sql: str = Field(..., min_length=1, description="Parameterized statement")
    weight: int = Field(1, ge=0, description="Relative execution frequency")
    parameters: List[ParameterSpec] = Field(
        default_factory=list, description="Value generators, one per placeholder"
    )

    @property
    def placeholder_count(self) -> int:
        return self.sql.replace("%%", "").count("%s")

    @model_validator(mode="after")
    def validate_placeholders(self):
        expected = self.placeholder_count
        if expected != len(self.parameters):
            raise ValueError(
                f"query {self.id!r} has {expected} placeholder(s) "
                f"but {len(self.parameters)} parameter spec(s)"
            )
        return self
