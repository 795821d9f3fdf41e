import random

import pytest
from tenant_sandbox.analyzer import (
    LARGE_CODE_SIZE,
    MAX_CODE_SIZE,
    analyze,
    calculate_metrics,
    normalize_language,
    quick_safety_check,
    sanitize_code,
)
from tenant_sandbox.models.analysis import BLOCKING_SEVERITIES, AnalysisVerdict, CodeIssue

SAFE_SNIPPETS = [
    "const total = items.reduce((a, b) => a + b, 0);",
    "function add(a, b) { return a + b; }",
    "let name = user.firstName + ' ' + user.lastName;",
    "module.exports = { handler: async (params) => ({ ok: true }) };",
    "const rows = await db.query('SELECT * FROM users WHERE id = ?', [id]);",
    "if (count > 10) { count = 10; }",
    "// a harmless comment",
]

DANGEROUS_SNIPPETS = [
    "eval(userInput);",
    "const f = new Function('a', 'return a');",
    "require('child_process').execSync('ls');",
    "fs.unlinkSync('/tmp/x');",
    "process.exit(1);",
    "const password = 'hunter2';",
    "obj.__proto__.polluted = true;",
    "setTimeout('alert(1)', 10);",
    "const data = require('http');",
    "fetch('http://example.com');",
    "const p = '../secrets';",
    "console.log(value);",
    "while (true) { tick(); }",
]


def test_eval_is_a_critical_code_execution_issue() -> None:
    verdict = analyze("eval(userInput)", "javascript")

    assert verdict.safe is False
    assert len(verdict.issues) == 1
    assert verdict.issues[0].severity == "critical"
    assert verdict.issues[0].category == "code_execution"
    assert verdict.issues[0].matched_text == "eval("


def test_console_log_is_only_a_warning() -> None:
    verdict = analyze('console.log("hi")', "javascript")

    assert verdict.safe is True
    assert verdict.issues == []
    assert len(verdict.warnings) == 1
    assert verdict.warnings[0].category == "debugging"


@pytest.mark.parametrize("code", ["", None, 42, ["eval(x)"]])
def test_invalid_input_is_unsafe(code: object) -> None:
    verdict = analyze(code)

    assert verdict.safe is False
    assert [i.category for i in verdict.issues] == ["invalid"]
    assert verdict.issues[0].severity == "critical"
    assert verdict.metrics.char_count == 0


def test_oversize_input_is_unsafe_with_metrics() -> None:
    code = "a\n" * (MAX_CODE_SIZE // 2 + 1)

    verdict = analyze(code)

    assert verdict.safe is False
    assert [i.category for i in verdict.issues] == ["size"]
    assert verdict.metrics.char_count == len(code)
    assert verdict.metrics.line_count == code.count("\n") + 1


def test_custom_max_size() -> None:
    assert analyze("const a = 1;", max_size=5).issues[0].category == "size"


def test_large_code_gets_a_size_warning() -> None:
    code = "a" * (LARGE_CODE_SIZE + 1)

    verdict = analyze(code)

    assert verdict.safe is True
    assert [w.category for w in verdict.warnings] == ["size"]


def test_issue_line_numbers_are_one_based() -> None:
    code = "const a = 1;\nconst b = 2;\n\neval(a + b);\nprocess.exit(0);"

    verdict = analyze(code)

    lines = {issue.category: issue.line for issue in verdict.issues}
    assert lines == {"code_execution": 4, "process": 5}


def test_every_match_is_reported() -> None:
    verdict = analyze("eval(a);\neval(b);\neval(c);")
    assert [i.line for i in verdict.issues] == [1, 2, 3]


@pytest.mark.parametrize(
    "code, category, severity",
    [
        ("const cp = require('child_process');", "process", "critical"),
        ("import { readFile } from 'fs';", "file_system", "high"),
        ("fs.writeFileSync(path, data);", "file_system", "critical"),
        ("spawn('rm', ['-rf', '/']);", "process", "critical"),
        ("const key = process.env.SECRET;", "environment", "medium"),
        ("const net = require('net');", "network", "high"),
        ("const r = await fetch(url);", "network", "medium"),
        ("const api_key = 'sk-123456';", "secrets", "critical"),
        ("target.constructor['prototype'].x = 1;", "prototype_pollution", "high"),
        ("db.query(`SELECT * FROM users WHERE id = ${id}`);", "sql_injection", "high"),
        ("const p = '../../etc/passwd';", "path_traversal", "medium"),
        ("setInterval(\"tick()\", 100);", "code_execution", "high"),
    ],
)
def test_javascript_detectors(code: str, category: str, severity: str) -> None:
    verdict = analyze(code, "javascript")

    assert (category, severity) in {(i.category, i.severity) for i in verdict.issues}
    assert verdict.safe is (severity not in BLOCKING_SEVERITIES)


def test_parameterized_sql_is_not_flagged() -> None:
    verdict = analyze("db.query('SELECT * FROM users WHERE id = ?', [id]);")
    assert verdict.issues == []


@pytest.mark.parametrize(
    "code, category",
    [
        ("import subprocess\nsubprocess.run(['ls'])", "process"),
        ("os.system('rm -rf /')", "process"),
        ("exec(source)", "code_execution"),
        ("mod = __import__('os')", "code_execution"),
        ("shutil.rmtree(path)", "file_system"),
        ("sys.exit(3)", "process"),
        ("import socket", "network"),
        ("token = 'abc123'", "secrets"),
        ("().__class__.__bases__[0].__subclasses__()", "sandbox_escape"),
        ('cur.execute(f"SELECT * FROM t WHERE id = {uid}")', "sql_injection"),
        ("cur.execute('DELETE FROM t WHERE id = %s' % uid)", "sql_injection"),
        ("code = compile(src, 'x', 'exec')", "code_execution"),
        ("open('out.txt', 'w')", "file_system"),
    ],
)
def test_python_detectors_block(code: str, category: str) -> None:
    verdict = analyze(code, "python")

    assert category in {i.category for i in verdict.blocking_issues}
    assert verdict.safe is False


def test_python_environment_access_is_medium() -> None:
    verdict = analyze("home = os.environ['HOME']", "python")

    assert [(i.category, i.severity) for i in verdict.issues] == [("environment", "medium")]
    assert verdict.safe is True


def test_python_handler_is_safe() -> None:
    code = 'import re\n\nPATTERN = re.compile(r"\\d+")\n\n\ndef handler(params):\n    return {"sum": params["a"] + params["b"]}\n'

    verdict = analyze(code, "python")

    assert verdict.safe is True
    assert verdict.issues == []
    assert verdict.warnings == []
    assert verdict.metrics.has_imports is True
    assert verdict.metrics.has_exports is True


def test_python_warnings() -> None:
    code = "while True:\n    try:\n        step()\n    except:\n        pass\n    print('tick')  # TODO remove\n"

    verdict = analyze(code, "py")

    categories = [w.category for w in verdict.warnings]
    assert "infinite_loop" in categories
    assert categories.count("error_handling") == 2
    assert "debugging" in categories
    assert "incomplete" in categories
    assert verdict.safe is True


def test_javascript_warnings() -> None:
    code = "for (;;) { debugger; }\ntry { run(); } catch (e) {}\nlet x: any = 1; // FIXME"

    verdict = analyze(code, "ts")

    assert {w.category for w in verdict.warnings} == {"infinite_loop", "debugging", "error_handling", "type_safety", "incomplete"}
    assert all(w.level == "warning" for w in verdict.warnings)


def test_unknown_language_uses_every_detector() -> None:
    assert analyze("os.system('ls')", "cobol").safe is False
    assert analyze("require('child_process')", "cobol").safe is False
    # The same Python snippet passes the JavaScript table
    assert analyze("os.system('ls')", "javascript").safe is True


def test_language_aliases() -> None:
    assert normalize_language("JS") == "javascript"
    assert normalize_language(" TypeScript ") == "typescript"
    assert normalize_language("py") == "python"
    assert normalize_language(None) == "javascript"
    assert normalize_language("ruby") == "ruby"


def test_metrics() -> None:
    code = "import x from 'y';\nexport const f = () => { if (a) { return 1; } };"

    metrics = calculate_metrics(code)

    assert metrics.line_count == 2
    assert metrics.char_count == len(code)
    assert metrics.has_imports is True
    assert metrics.has_exports is True
    assert metrics.complexity == "low"


@pytest.mark.parametrize("branches, expected", [(0, "low"), (4, "low"), (5, "medium"), (14, "medium"), (15, "high")])
def test_complexity_buckets(branches: int, expected: str) -> None:
    code = "let a = 0;\n" + "if (a) { a++; }\n" * branches
    assert calculate_metrics(code).complexity == expected


def test_metrics_independent_of_issues() -> None:
    verdict = analyze("eval(a)\neval(b)")
    assert verdict.metrics.line_count == 2
    assert verdict.metrics.has_imports is False


def test_safe_is_derived_and_cannot_be_set() -> None:
    verdict = AnalysisVerdict(issues=[CodeIssue(severity="medium", category="environment", message="env")])
    assert verdict.safe is True
    assert verdict.model_dump()["safe"] is True

    verdict = AnalysisVerdict(issues=[CodeIssue(severity="high", category="network", message="net")])
    assert verdict.safe is False
    with pytest.raises((AttributeError, ValueError)):
        verdict.safe = True  # type: ignore[misc]


def test_safe_invariant_over_random_inputs() -> None:
    rng = random.Random(20240901)

    for _ in range(300):
        parts = rng.sample(SAFE_SNIPPETS, rng.randint(0, 4)) + rng.sample(DANGEROUS_SNIPPETS, rng.randint(0, 3))
        rng.shuffle(parts)
        code = "\n".join(parts) or "const x = 1;"
        language = rng.choice(["javascript", "typescript", "python", "unknown"])

        verdict = analyze(code, language)

        assert verdict.safe == (not any(i.severity in {"critical", "high"} for i in verdict.issues))
        assert all(i.line is not None and 1 <= i.line <= code.count("\n") + 1 for i in verdict.issues)
        # The fast path never passes code the full analysis finds critical
        if any(i.severity == "critical" for i in verdict.issues):
            assert quick_safety_check(code, language) is False
        if not quick_safety_check(code, language):
            assert verdict.safe is False


def test_quick_safety_check() -> None:
    assert quick_safety_check("const a = 1;") is True
    assert quick_safety_check("eval(x)") is False
    # High severity only: the fast path lets it through
    assert quick_safety_check("obj.__proto__ = {}") is True
    assert quick_safety_check("") is False
    assert quick_safety_check(None) is False
    assert quick_safety_check("x" * (MAX_CODE_SIZE + 1)) is False
    assert quick_safety_check("subprocess.run(cmd)", "python") is False


def test_sanitize_code() -> None:
    code = "const r = eval(input);\nconst f = new Function('a', 'return a');"

    sanitized = sanitize_code(code)

    assert sanitized == "const r = /* eval removed */;\nconst f = /* Function constructor removed */;"
    assert analyze(sanitized).safe is True
