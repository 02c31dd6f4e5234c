"""Pydantic v2 schema models for formula specification files."""

from __future__ import annotations

import math
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sdfkit.expr import RESERVED_NAMES, dim_of

ValueType = Literal["f32", "vec2", "vec3"]
Number = Union[int, float]

FORMULA_CATEGORIES: frozenset[str] = frozenset(
    {"primitive", "boolean", "modifier", "transform", "deformation", "repetition"}
)


def _check_identifier(name: str) -> str:
    if not name.isidentifier() or name.startswith("_"):
        raise ValueError(f"{name!r} is not a valid identifier")
    if name in RESERVED_NAMES:
        raise ValueError(f"{name!r} is a reserved name")
    return name


class FormulaParam(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str
    type: ValueType
    description: str = ""

    @field_validator("name")
    @classmethod
    def name_is_identifier(cls, v: str) -> str:
        return _check_identifier(v)


class FormulaStep(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str
    expr: str
    description: str = ""

    @field_validator("name")
    @classmethod
    def name_is_identifier(cls, v: str) -> str:
        return _check_identifier(v)


class Pitfall(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str
    wrong: str
    right: str
    explanation: str = ""


class FormulaTestVector(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str
    input: dict[str, Union[Number, list[Number]]]
    expected: Union[Number, list[Number]]
    tolerance: float = Field(default=1e-5, gt=0.0)
    description: str = ""

    @field_validator("input")
    @classmethod
    def inputs_finite(cls, v: dict) -> dict:
        for key, value in v.items():
            values = value if isinstance(value, list) else [value]
            if not all(math.isfinite(float(x)) for x in values):
                raise ValueError(f"input {key!r} must be finite")
        return v


class FormulaSpec(BaseModel):
    """One formula: typed parameters, named steps and a final expression."""

    model_config = ConfigDict(extra="forbid")
    name: str
    category: str
    description: str
    params: list[FormulaParam] = Field(min_length=1)
    returns: ValueType = "f32"
    steps: list[FormulaStep] = Field(default_factory=list)
    expression: str
    pitfalls: list[Pitfall] = Field(default_factory=list)
    test_vectors: list[FormulaTestVector] = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def name_is_identifier(cls, v: str) -> str:
        return _check_identifier(v)

    @field_validator("category")
    @classmethod
    def category_known(cls, v: str) -> str:
        if v not in FORMULA_CATEGORIES:
            raise ValueError(f"unknown category {v!r} (known: {sorted(FORMULA_CATEGORIES)})")
        return v

    @model_validator(mode="after")
    def names_and_vectors_consistent(self) -> FormulaSpec:
        seen: set[str] = set()
        for name in [p.name for p in self.params] + [s.name for s in self.steps]:
            if name in seen:
                raise ValueError(f"duplicate parameter or step name {name!r}")
            seen.add(name)

        param_types = {p.name: p.type for p in self.params}
        return_dim = dim_of(self.returns)
        for vector in self.test_vectors:
            missing = set(param_types) - set(vector.input)
            extra = set(vector.input) - set(param_types)
            if missing or extra:
                raise ValueError(
                    f"test vector {vector.name!r}: inputs must match parameters "
                    f"(missing {sorted(missing)}, unexpected {sorted(extra)})"
                )
            for pname, value in vector.input.items():
                _check_arity(vector.name, pname, value, dim_of(param_types[pname]))
            _check_arity(vector.name, "expected", vector.expected, return_dim)
        return self


def _check_arity(vector: str, label: str, value: object, dim: int) -> None:
    size = len(value) if isinstance(value, list) else 1
    if (dim == 1) == isinstance(value, list) or size != dim:
        raise ValueError(f"test vector {vector!r}: {label} must have {dim} component(s)")


class FormulaFile(BaseModel):
    """Top-level document of a ``formula_specs/*.yaml`` file."""

    model_config = ConfigDict(extra="forbid")
    version: str
    formulas: list[FormulaSpec] = Field(min_length=1)
