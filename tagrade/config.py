from __future__ import annotations

# Grading configuration (YAML) models.
#
# Keys in the YAML file keep their historical camelCase spelling; the Python side
# uses snake_case attributes through aliases.

import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigError


class TestCase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)
    __test__ = False  # not a pytest class

    name: str
    arg: str = ""
    input: list[str] = Field(default_factory=list)
    expect: list[str] = Field(default_factory=list)

    @field_validator("expect")
    @classmethod
    def _expect_must_compile(cls, value: list[str]) -> list[str]:
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid expect pattern {pattern!r}: {exc}") from exc
        return value

    def first_expect_pattern(self) -> re.Pattern[str] | None:
        # Only the first pattern is evaluated; later ones are documentation.
        if not self.expect:
            return None
        return re.compile(self.expect[0])


class TaskDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    word: list[str] = Field(min_length=1)
    exclude_word: list[str] = Field(default_factory=list, alias="excludeWord")
    testcase: list[TestCase] = Field(default_factory=list)

    @field_validator("word")
    @classmethod
    def _words_not_blank(cls, value: list[str]) -> list[str]:
        if any(not w for w in value):
            raise ValueError("marker words must not be empty strings")
        return value

    @model_validator(mode="after")
    def _unique_testcase_names(self) -> "TaskDefinition":
        seen: set[str] = set()
        for case in self.testcase:
            if case.name in seen:
                raise ValueError(f"duplicate test case name: {case.name}")
            seen.add(case.name)
        return self


class GradingConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    compile_timeout: int = Field(alias="compileTimeout")
    # Negative value waits for the program indefinitely.
    running_timeout: int = Field(alias="runningTimeout")
    output_file_name: str = Field(default="output", alias="outputFileName")
    allow_ambiguous_class_path: bool = Field(default=False, alias="allowAmbiguousClassPath")
    tasks: dict[str, TaskDefinition]

    def task_order(self) -> dict[str, int]:
        return {name: idx for idx, name in enumerate(self.tasks)}


def parse_config(raw: Any) -> GradingConfig:
    if not isinstance(raw, dict):
        raise ConfigError("config root must be a mapping")
    try:
        return GradingConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid config: {exc}") from exc


def load_config(path: Path) -> GradingConfig:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read config {path}: {exc}") from exc
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid yaml in {path}: {exc}") from exc
    return parse_config(raw)
