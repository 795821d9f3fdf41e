# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""Static safety screening for generated source code.

The analyzer is a coarse, pattern based pre-filter. It never parses the code,
so syntactically invalid input is handled like any other text. Containment is
the job of the execution engine, not of this module.
"""

import re
from bisect import bisect_left

from tenant_sandbox.models.analysis import AnalysisVerdict, CodeIssue, CodeMetrics, CodeWarning
from tenant_sandbox.patterns import (
    DANGEROUS_PATTERNS,
    LANGUAGE_ALIASES,
    WARNING_PATTERNS,
    Detector,
)

MAX_CODE_SIZE = 100_000
LARGE_CODE_SIZE = 50_000


def _union(tables: dict[str, tuple[Detector, ...]]) -> tuple[Detector, ...]:
    merged: dict[int, Detector] = {}
    for table in tables.values():
        for detector in table:
            merged.setdefault(id(detector), detector)
    return tuple(merged.values())


_ALL_DANGEROUS = _union(DANGEROUS_PATTERNS)
_ALL_WARNINGS = _union(WARNING_PATTERNS)

_METRIC_PATTERNS: dict[str, tuple[re.Pattern[str], re.Pattern[str], re.Pattern[str], re.Pattern[str]]] = {
    "javascript": (
        re.compile(r"\b(?:import|require)\b"),
        re.compile(r"\b(?:export|module\.exports)\b"),
        re.compile(r"\b(?:if|else|for|while|switch|try|catch)\b"),
        re.compile(r"\bfunction\b|=>"),
    ),
    "python": (
        re.compile(r"^\s*(?:import|from)\s+\w", re.M),
        re.compile(r"\b__all__\b|^(?:async\s+)?def\s+\w+|^handler\s*=", re.M),
        re.compile(r"\b(?:if|elif|else|for|while|try|except|with|match)\b"),
        re.compile(r"\b(?:def|lambda)\b"),
    ),
}


def normalize_language(language: str | None) -> str:
    lowered = (language or "javascript").strip().lower()
    return LANGUAGE_ALIASES.get(lowered, lowered)


def _tables(language: str) -> tuple[tuple[Detector, ...], tuple[Detector, ...]]:
    # Unknown languages are screened with every rule we have
    if language in DANGEROUS_PATTERNS:
        return DANGEROUS_PATTERNS[language], WARNING_PATTERNS[language]
    return _ALL_DANGEROUS, _ALL_WARNINGS


class _LineIndex:
    """Maps character offsets to 1-based line numbers."""

    def __init__(self, text: str):
        self._newlines = [m.start() for m in re.finditer("\n", text)]

    def line_of(self, offset: int) -> int:
        return bisect_left(self._newlines, offset) + 1


def calculate_metrics(code: str, language: str = "javascript") -> CodeMetrics:
    family = "python" if normalize_language(language) == "python" else "javascript"
    imports, exports, control_flow, functions = _METRIC_PATTERNS[family]

    score = len(control_flow.findall(code)) + len(functions.findall(code))
    if score < 5:
        complexity = "low"
    elif score < 15:
        complexity = "medium"
    else:
        complexity = "high"

    return CodeMetrics(
        line_count=code.count("\n") + 1,
        char_count=len(code),
        has_imports=bool(imports.search(code)),
        has_exports=bool(exports.search(code)),
        complexity=complexity,
    )


def _scan(code: str, language: str) -> tuple[list[CodeIssue], list[CodeWarning]]:
    dangerous, warning_rules = _tables(language)
    index = _LineIndex(code)

    issues = [
        CodeIssue(
            severity=detector.severity,  # type: ignore[arg-type]
            category=detector.category,
            message=detector.message,
            line=index.line_of(match.start()),
            matched_text=match.group(0),
        )
        for detector in dangerous
        for match in detector.pattern.finditer(code)
    ]
    warnings = [
        CodeWarning(
            category=detector.category,
            message=detector.message,
            line=index.line_of(match.start()),
        )
        for detector in warning_rules
        for match in detector.pattern.finditer(code)
    ]
    return issues, warnings


def analyze(code: object, language: str = "javascript", max_size: int = MAX_CODE_SIZE) -> AnalysisVerdict:
    """Screens generated code for dangerous constructs.

    Pure function: no I/O, never raises for bad input.

    Args:
        code: The candidate source code.
        language: ``javascript``, ``typescript`` or ``python`` (aliases accepted).
            Unknown languages are screened with every known rule.
        max_size: Largest accepted input, in characters.

    Returns:
        AnalysisVerdict: Issues, warnings and metrics. ``safe`` is False when any
        issue is ``critical`` or ``high``.
    """
    if not isinstance(code, str) or not code:
        return AnalysisVerdict(
            issues=[CodeIssue(severity="critical", category="invalid", message="Invalid code input")],
        )

    language = normalize_language(language)

    if len(code) > max_size:
        return AnalysisVerdict(
            issues=[
                CodeIssue(
                    severity="critical",
                    category="size",
                    message=f"Code exceeds maximum size of {max_size} characters",
                )
            ],
            metrics=calculate_metrics(code, language),
        )

    issues, warnings = _scan(code, language)
    metrics = calculate_metrics(code, language)

    if metrics.char_count > LARGE_CODE_SIZE:
        warnings.append(CodeWarning(category="size", message="Code size is large, consider splitting"))

    return AnalysisVerdict(issues=issues, warnings=warnings, metrics=metrics)


def quick_safety_check(code: object, language: str = "javascript", max_size: int = MAX_CODE_SIZE) -> bool:
    """Fast boolean gate that only runs the critical detectors."""
    if not isinstance(code, str) or not code or len(code) > max_size:
        return False

    dangerous, _ = _tables(normalize_language(language))
    return not any(d.pattern.search(code) for d in dangerous if d.severity == "critical")


_EVAL_CALL = re.compile(r"\beval\s*\([^)]*\)", re.IGNORECASE)
_FUNCTION_CTOR = re.compile(r"\bnew\s+Function\s*\([^)]*\)", re.IGNORECASE)


def sanitize_code(code: str) -> str:
    """Replaces obvious dynamic evaluation calls with inert comments.

    Experimental. A sanitized artifact still has to pass ``analyze``.
    """
    sanitized = _EVAL_CALL.sub("/* eval removed */", code)
    return _FUNCTION_CTOR.sub("/* Function constructor removed */", sanitized)
