# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""Data models for safety analysis verdicts."""

from typing import Literal

from pydantic import BaseModel, Field, computed_field

Severity = Literal["critical", "high", "medium"]
Complexity = Literal["low", "medium", "high"]

BLOCKING_SEVERITIES: frozenset[str] = frozenset({"critical", "high"})


class CodeIssue(BaseModel):
    """A dangerous construct found in submitted code."""

    severity: Severity
    category: str
    message: str
    line: int | None = None
    matched_text: str | None = None


class CodeWarning(BaseModel):
    """A low-stakes finding that never blocks acceptance."""

    level: Literal["warning", "info"] = "warning"
    category: str
    message: str
    line: int | None = None


class CodeMetrics(BaseModel):
    line_count: int = 0
    char_count: int = 0
    has_imports: bool = False
    has_exports: bool = False
    complexity: Complexity = "low"


class AnalysisVerdict(BaseModel):
    """The structured output of the safety analyzer.

    ``safe`` is derived from ``issues`` and cannot be set directly.
    """

    issues: list[CodeIssue] = Field(default_factory=list)
    warnings: list[CodeWarning] = Field(default_factory=list)
    metrics: CodeMetrics = Field(default_factory=CodeMetrics)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def safe(self) -> bool:
        return not self.blocking_issues

    @property
    def blocking_issues(self) -> list[CodeIssue]:
        return [issue for issue in self.issues if issue.severity in BLOCKING_SEVERITIES]
