"""
Judge harness - wraps candidate code with a per-test-case driver and
classifies the output of one run.

The driver calls the candidate's entry function once per test case,
passing the case input, and prints the return value on its own line
(strings verbatim, everything else compact JSON so that Python and
JavaScript print booleans, numbers and lists the same way).

Classification of one batch run:
- accepted: clean exit, no stderr, every line matches its expected output
- wrong_answer: clean exit, no stderr, at least one line differs
- runtime_error: non-zero exit, killed by the timeout, or anything on stderr
"""

import json
from typing import List, Optional, Any
from pydantic import BaseModel, Field

from attempt_engine.models.coding_submission import SubmissionStatus

DEFAULT_ENTRY_FUNCTION = "solve"


class JudgeCase(BaseModel):
    input: Any = None
    expected_output: Any = Field(None, alias="output")

    model_config = {"populate_by_name": True}

    @property
    def expected_text(self) -> str:
        return _as_output_text(self.expected_output)


class CaseResult(BaseModel):
    index: int
    passed: bool
    expected: str
    actual: Optional[str] = None


class JudgeResult(BaseModel):
    status: str
    passed: int = 0
    total: int = 0
    outputs: List[str] = Field(default_factory=list)
    cases: List[CaseResult] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status == SubmissionStatus.ACCEPTED


def _as_output_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return json.dumps(value, separators=(",", ":"))


def normalize_test_cases(raw_cases) -> List[JudgeCase]:
    """
    Build JudgeCase objects from stored metadata.

    Accepts both {"input", "output"} and {"input", "expected_output"} shapes.
    """
    cases = []
    for raw in raw_cases or []:
        if isinstance(raw, JudgeCase):
            cases.append(raw)
            continue
        expected = raw.get("output", raw.get("expected_output", raw.get("expectedOutput")))
        cases.append(JudgeCase(input=raw.get("input"), output=expected))
    return cases


PYTHON_DRIVER = '''

import json as __judge_json

def __judge_format(value):
    if isinstance(value, str):
        return value
    return __judge_json.dumps(value, separators=(",", ":"))

for __judge_case in __judge_json.loads({inputs!r}):
    print(__judge_format({entry}(__judge_case)), flush=True)
'''

JAVASCRIPT_DRIVER = '''

const __judgeCases = {inputs};
for (const __judgeCase of __judgeCases) {{
  const __judgeResult = {entry}(__judgeCase);
  console.log(typeof __judgeResult === 'string' ? __judgeResult : JSON.stringify(__judgeResult));
}}
'''


def build_python_program(code: str, tests: List[JudgeCase], entry: str) -> str:
    inputs = json.dumps([t.input for t in tests])
    return code + PYTHON_DRIVER.format(inputs=inputs, entry=entry)


def build_javascript_program(code: str, tests: List[JudgeCase], entry: str) -> str:
    inputs = json.dumps([t.input for t in tests])
    return code + JAVASCRIPT_DRIVER.format(inputs=inputs, entry=entry)


# language -> (file extension, program builder)
LANGUAGES = {
    "python": (".py", build_python_program),
    "javascript": (".js", build_javascript_program),
}


def is_supported(language: str) -> bool:
    return language in LANGUAGES


def build_program(language: str, code: str, tests: List[JudgeCase],
                  entry: str = DEFAULT_ENTRY_FUNCTION) -> str:
    _, builder = LANGUAGES[language]
    return builder(code, tests, entry or DEFAULT_ENTRY_FUNCTION)


def classify(tests: List[JudgeCase], stdout: str, stderr: str,
             returncode: Optional[int], timed_out: bool = False) -> JudgeResult:
    """Turn the raw output of one batch run into a terminal JudgeResult."""
    stdout = stdout or ""
    stderr = (stderr or "").strip()
    outputs = stdout.strip().split("\n") if stdout.strip() else []
    total = len(tests)

    if timed_out or returncode != 0 or stderr:
        if timed_out:
            error = "Time limit exceeded"
        else:
            error = stderr or "Process exited with code {}".format(returncode)
        return JudgeResult(
            status=SubmissionStatus.RUNTIME_ERROR,
            passed=0,
            total=total,
            outputs=outputs,
            cases=[
                CaseResult(index=i, passed=False, expected=t.expected_text,
                           actual=outputs[i].strip() if i < len(outputs) else None)
                for i, t in enumerate(tests)
            ],
            error=error,
        )

    cases = []
    for i, test in enumerate(tests):
        actual = outputs[i].strip() if i < len(outputs) else None
        cases.append(CaseResult(index=i, passed=actual == test.expected_text,
                                expected=test.expected_text, actual=actual))

    passed = sum(1 for c in cases if c.passed)
    status = SubmissionStatus.ACCEPTED if passed == total and len(outputs) == total \
        else SubmissionStatus.WRONG_ANSWER

    return JudgeResult(status=status, passed=passed, total=total,
                       outputs=outputs, cases=cases)
