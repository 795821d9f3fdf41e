"""Detector tables for the safety analyzer.

Each table is ordered; the analyzer reports matches in table order. Adding a
detector is a data change here, not a code change in the analyzer.
"""

import re
from dataclasses import dataclass

_I = re.IGNORECASE
_SQL_KEYWORDS = r"(?:SELECT|INSERT|UPDATE|DELETE|DROP|CREATE|ALTER)"


@dataclass(frozen=True)
class Detector:
    """A single regular-expression rule.

    Attributes:
        pattern: Compiled expression searched across the whole source text.
        category: Machine readable grouping (e.g. ``code_execution``).
        message: Human readable explanation reported with every match.
        severity: ``critical``, ``high`` or ``medium`` for issues, ``warning`` for warnings.
    """

    pattern: re.Pattern[str]
    category: str
    message: str
    severity: str


def _rule(pattern: str, category: str, message: str, severity: str, flags: int = _I) -> Detector:
    return Detector(re.compile(pattern, flags), category, message, severity)


JAVASCRIPT_DANGEROUS: tuple[Detector, ...] = (
    # Code execution
    _rule(r"\beval\s*\(", "code_execution", "Use of eval() can execute arbitrary code", "critical"),
    _rule(
        r"\bnew\s+Function\s*\(",
        "code_execution",
        "Dynamic Function constructor can execute arbitrary code",
        "critical",
    ),
    _rule(
        r"\bsetTimeout\s*\(\s*['\"`]",
        "code_execution",
        "setTimeout with string argument can execute arbitrary code",
        "high",
    ),
    _rule(
        r"\bsetInterval\s*\(\s*['\"`]",
        "code_execution",
        "setInterval with string argument can execute arbitrary code",
        "high",
    ),
    # File system
    _rule(r"\brequire\s*\(\s*['\"`]fs['\"`]\s*\)", "file_system", "Direct fs module access detected", "high"),
    _rule(r"\bimport\s+.*\s+from\s+['\"`]fs['\"`]", "file_system", "Direct fs module import detected", "high"),
    _rule(
        r"\bfs\.(?:unlink|rmdir|rm|writeFile|appendFile|chmod|chown)",
        "file_system",
        "Destructive file system operation detected",
        "critical",
    ),
    # Process / system
    _rule(
        r"\brequire\s*\(\s*['\"`]child_process['\"`]\s*\)",
        "process",
        "child_process module access detected",
        "critical",
    ),
    _rule(
        r"\bimport\s+.*\s+from\s+['\"`]child_process['\"`]",
        "process",
        "child_process module import detected",
        "critical",
    ),
    _rule(r"\b(?:exec|spawn|execSync|spawnSync)\s*\(", "process", "Shell command execution detected", "critical"),
    _rule(r"\bprocess\.(?:exit|kill|abort)", "process", "Process termination command detected", "critical"),
    _rule(r"\bprocess\.env", "environment", "Environment variable access detected", "medium"),
    # Network
    _rule(
        r"\brequire\s*\(\s*['\"`](?:http|https|net|dgram)['\"`]\s*\)",
        "network",
        "Network module access detected",
        "high",
    ),
    _rule(r"\bfetch\s*\(", "network", "Network fetch detected - verify destination", "medium"),
    # Secrets
    _rule(
        r"(?:password|secret|api_key|apikey|token|private_key)\s*[=:]\s*['\"`][^'\"`]+['\"`]",
        "secrets",
        "Hardcoded secret or credential detected",
        "critical",
    ),
    # Prototype pollution
    _rule(r"__proto__", "prototype_pollution", "__proto__ access can lead to prototype pollution", "high"),
    _rule(
        r"\bconstructor\s*\[\s*['\"`]prototype['\"`]\s*\]",
        "prototype_pollution",
        "Prototype manipulation detected",
        "high",
    ),
    # SQL built from template strings
    _rule(
        rf"`[^`]*(?:\$\{{[^}}]+\}}[^`]*\b{_SQL_KEYWORDS}\b|\b{_SQL_KEYWORDS}\b[^`]*\$\{{[^}}]+\}})",
        "sql_injection",
        "Potential SQL injection in template string",
        "high",
    ),
    # Path traversal
    _rule(r"\.\./", "path_traversal", "Path traversal pattern detected", "medium", flags=0),
)

JAVASCRIPT_WARNINGS: tuple[Detector, ...] = (
    _rule(r"while\s*\(\s*true\s*\)", "infinite_loop", "Potential infinite loop detected", "warning"),
    _rule(r"for\s*\(\s*;\s*;\s*\)", "infinite_loop", "Potential infinite loop detected", "warning"),
    _rule(
        r"console\.(?:log|error|warn|debug)",
        "debugging",
        "Console statement should be removed in production",
        "warning",
    ),
    _rule(r"debugger\s*;", "debugging", "Debugger statement should be removed", "warning"),
    _rule(r"TODO|FIXME|HACK|XXX", "incomplete", "Code contains TODO/FIXME markers", "warning"),
    _rule(r"\bany\b", "type_safety", 'Use of "any" type reduces type safety', "warning"),
    _rule(r"catch\s*\(\s*\w*\s*\)\s*\{\s*\}", "error_handling", "Empty catch block swallows errors", "warning"),
)

PYTHON_DANGEROUS: tuple[Detector, ...] = (
    # Code execution
    _rule(r"\b(?:eval|exec)\s*\(", "code_execution", "Use of eval()/exec() can execute arbitrary code", "critical", 0),
    _rule(r"\b__import__\s*\(", "code_execution", "Dynamic __import__ can load arbitrary modules", "critical", 0),
    _rule(r"(?<![\w.])compile\s*\(", "code_execution", "compile() can build arbitrary code objects", "high", 0),
    _rule(
        r"\b(?:pickle|marshal|shelve)\.loads?\s*\(",
        "code_execution",
        "Deserializing untrusted data can execute arbitrary code",
        "high",
        0,
    ),
    # File system
    _rule(r"^\s*(?:import\s+shutil\b|from\s+shutil\s+import)", "file_system", "Direct shutil import detected", "high", re.M),
    _rule(
        r"\b(?:os\.(?:remove|unlink|rmdir|removedirs|chmod|chown|rename|truncate)"
        r"|shutil\.(?:rmtree|move|chown|copy\w*))\s*\(",
        "file_system",
        "Destructive file system operation detected",
        "critical",
        0,
    ),
    _rule(
        r"\bopen\s*\([^)]*['\"](?:w|a|x|r\+|w\+|a\+)b?['\"]",
        "file_system",
        "Raw file write detected",
        "high",
        0,
    ),
    # Process / system
    _rule(
        r"^\s*(?:import\s+(?:subprocess|pty)\b|from\s+(?:subprocess|pty)\s+import)",
        "process",
        "subprocess module import detected",
        "critical",
        re.M,
    ),
    _rule(
        r"\b(?:os\.(?:system|popen|exec\w*|spawn\w*|fork)|subprocess\.\w+|pty\.spawn)\s*\(",
        "process",
        "Shell command execution detected",
        "critical",
        0,
    ),
    _rule(
        r"\b(?:sys\.exit|os\._exit|os\.kill|os\.killpg|os\.abort)\s*\(",
        "process",
        "Process termination command detected",
        "critical",
        0,
    ),
    _rule(r"\bos\.(?:environ|getenv)\b", "environment", "Environment variable access detected", "medium", 0),
    # Network
    _rule(
        r"^\s*(?:import\s+(?:socket|ftplib|smtplib|telnetlib|http\.client|urllib\w*)\b"
        r"|from\s+(?:socket|ftplib|smtplib|http|urllib\w*)\b[\w.]*\s+import)",
        "network",
        "Network module access detected",
        "high",
        re.M,
    ),
    _rule(
        r"\b(?:requests|httpx)\.(?:get|post|put|patch|delete|head|request)\s*\(|\burlopen\s*\(",
        "network",
        "Network request detected - verify destination",
        "medium",
        0,
    ),
    # Secrets
    _rule(
        r"(?:password|secret|api_key|apikey|token|private_key)\s*[=:]\s*['\"][^'\"]+['\"]",
        "secrets",
        "Hardcoded secret or credential detected",
        "critical",
    ),
    # Interpreter escape idioms
    _rule(
        r"__(?:subclasses|globals|builtins|code|mro|bases)__",
        "sandbox_escape",
        "Dunder attribute access can escape the interpreter sandbox",
        "high",
        0,
    ),
    # SQL built from formatted strings
    _rule(
        rf"\bf(['\"])[^'\"\n]*(?:\b{_SQL_KEYWORDS}\b[^'\"\n]*\{{[^}}]+\}}|\{{[^}}]+\}}[^'\"\n]*\b{_SQL_KEYWORDS}\b)",
        "sql_injection",
        "Potential SQL injection in f-string",
        "high",
    ),
    _rule(
        rf"(['\"])\s*{_SQL_KEYWORDS}\b[^'\"\n]*\1\s*(?:%|\.format\s*\()",
        "sql_injection",
        "Potential SQL injection through string formatting",
        "high",
    ),
    # Path traversal
    _rule(r"\.\./", "path_traversal", "Path traversal pattern detected", "medium", 0),
)

PYTHON_WARNINGS: tuple[Detector, ...] = (
    _rule(r"\bwhile\s+(?:True|1)\s*:", "infinite_loop", "Potential infinite loop detected", "warning", 0),
    _rule(r"\bprint\s*\(", "debugging", "print() statement should be removed in production", "warning", 0),
    _rule(
        r"\bbreakpoint\s*\(\s*\)|\bpdb\.set_trace\s*\(",
        "debugging",
        "Debugger statement should be removed",
        "warning",
        0,
    ),
    _rule(r"\b(?:TODO|FIXME|HACK|XXX)\b", "incomplete", "Code contains TODO/FIXME markers", "warning", 0),
    _rule(r"\bAny\b|#\s*type:\s*ignore", "type_safety", "Unchecked types reduce type safety", "warning", 0),
    _rule(r"\bexcept\s*:", "error_handling", "Bare except catches every exception", "warning", 0),
    _rule(
        r"\bexcept\b[^:\n]*:\s*(?:#[^\n]*)?\n?\s*pass\b",
        "error_handling",
        "Empty except block swallows errors",
        "warning",
        0,
    ),
)

DANGEROUS_PATTERNS: dict[str, tuple[Detector, ...]] = {
    "javascript": JAVASCRIPT_DANGEROUS,
    "typescript": JAVASCRIPT_DANGEROUS,
    "python": PYTHON_DANGEROUS,
}

WARNING_PATTERNS: dict[str, tuple[Detector, ...]] = {
    "javascript": JAVASCRIPT_WARNINGS,
    "typescript": JAVASCRIPT_WARNINGS,
    "python": PYTHON_WARNINGS,
}

LANGUAGE_ALIASES: dict[str, str] = {
    "js": "javascript",
    "jsx": "javascript",
    "node": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
}
