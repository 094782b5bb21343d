"""Runtime queries: a definition bound to its parameter generators."""

from __future__ import annotations

import random
import string
from dataclasses import dataclass, field
from typing import Any, Callable

from mysql_benchmark.models.query import (
    FloatParameter,
    IntParameter,
    ListParameter,
    QueryDefinition,
    RangeParameter,
    StringParameter,
)

ParameterGenerator = Callable[[], Any]

_ALPHANUMERIC = string.ascii_letters + string.digits


def _range_generator(spec: RangeParameter) -> ParameterGenerator:
    state = {"next": spec.start}

    def _next() -> int:
        value = state["next"]
        following = value + spec.step
        state["next"] = spec.start if following > spec.stop else following
        return value

    return _next


def build_generator(spec: Any, rng: random.Random) -> ParameterGenerator:
    if isinstance(spec, IntParameter):
        return lambda: rng.randint(spec.min, spec.max)
    if isinstance(spec, FloatParameter):
        return lambda: rng.uniform(spec.min, spec.max)
    if isinstance(spec, RangeParameter):
        return _range_generator(spec)
    if isinstance(spec, ListParameter):
        values = list(spec.values)
        return lambda: rng.choice(values)
    if isinstance(spec, StringParameter):
        return lambda: "".join(rng.choices(_ALPHANUMERIC, k=spec.length))
    raise TypeError(f"Unsupported parameter spec: {type(spec).__name__}")


@dataclass
class Query:
    """A query definition with live parameter generators (worker side)."""

    definition: QueryDefinition
    generators: list[ParameterGenerator] = field(default_factory=list)

    @classmethod
    def from_definition(
        cls, definition: QueryDefinition, rng: random.Random | None = None
    ) -> "Query":
        rng = rng or random.Random()
        return cls(
            definition=definition,
            generators=[build_generator(spec, rng) for spec in definition.parameters],
        )

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def sql(self) -> str:
        return self.definition.sql

    def parameters(self) -> tuple[Any, ...]:
        return tuple(gen() for gen in self.generators)
