"""Solution judge for exercise submissions.

Runs a submission against a challenge's test vectors in the sandbox and turns
every outcome into a list of TestResults. The judge never raises: bad input,
broken code and runaway loops all come back as results the player can read.
"""

import copy
import logging
import re
import reprlib
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence

from codequest.core.exceptions import ChallengeNotFoundError
from codequest.core.metrics import record_submission
from codequest.game_engine.exercises.challenges import (
    Challenge,
    ChallengeCatalog,
    TestCase,
    default_catalog,
)
from codequest.game_engine.exercises.sandbox import (
    Interpreter,
    Program,
    SandboxLimitError,
    SandboxLimits,
    UnsupportedSyntaxError,
    UserFunction,
    compile_program,
)

logger = logging.getLogger(__name__)

# Bounded repr for values returned by user code
_short_repr = reprlib.Repr()
_short_repr.maxlevel = 3
_short_repr.maxlist = 20
_short_repr.maxtuple = 20
_short_repr.maxdict = 20
_short_repr.maxstring = 200
_short_repr.maxlong = 200
_short_repr.maxother = 200


class ResultType(str, Enum):
    """How a result is presented to the player."""
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"
    SYNTAX = "syntax"


class ErrorKind(str, Enum):
    """Why a submission did not pass."""
    EMPTY = "user_code_empty"
    MISSING_FUNCTION = "user_code_missing_function"
    UNIMPLEMENTED = "user_code_unimplemented"
    SYNTAX_ERROR = "user_code_syntax_error"
    RUNTIME_ERROR = "user_code_runtime_error"
    LOGIC_FAILURE = "user_code_logic_failure"
    FUNCTION_NOT_FOUND = "user_code_function_not_found"
    ITERATION_LIMIT = "user_code_iteration_limit"


@dataclass
class TestResult:
    """Outcome of one check against a submission."""
    __test__ = False  # Not a pytest class

    passed: bool
    message: str
    type: ResultType
    details: Optional[str] = None
    hint: Optional[str] = None
    suggestion: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    output: list[str] = field(default_factory=list)
    output_truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "message": self.message,
            "type": self.type.value,
            "details": self.details,
            "hint": self.hint,
            "suggestion": self.suggestion,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "output": list(self.output),
            "output_truncated": self.output_truncated,
        }


def values_equal(actual: Any, expected: Any) -> bool:
    """Structural equality as the exercises define it.

    Lists and tuples compare element-wise regardless of which one was used,
    and booleans never equal numbers.
    """
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    if isinstance(actual, (list, tuple)) and isinstance(expected, (list, tuple)):
        return len(actual) == len(expected) and all(
            values_equal(a, e) for a, e in zip(actual, expected)
        )
    if isinstance(actual, dict) and isinstance(expected, dict):
        return actual.keys() == expected.keys() and all(
            values_equal(actual[k], expected[k]) for k in actual
        )
    return actual == expected


def _increment_pattern(name: str) -> re.Pattern[str]:
    var = re.escape(name)
    return re.compile(rf"\b{var}\s*\+=\s*1\b|\b{var}\s*=\s*{var}\s*\+\s*1\b")


class SolutionJudge:
    """Judges submissions against challenge test vectors.

    Checks run in order and stop at the first one that fails:
    - Empty source
    - No function definition
    - Unimplemented placeholder
    - Loop-variable increment on the infinite-loop exercise
    - Parse and validation
    - One sandboxed call per test vector, all sharing one time budget
    """

    def __init__(
        self,
        catalog: Optional[ChallengeCatalog] = None,
        limits: Optional[SandboxLimits] = None,
    ):
        self.catalog = catalog or default_catalog()
        self._limits = limits

    @property
    def limits(self) -> SandboxLimits:
        # Resolved lazily so settings overrides in tests take effect
        return self._limits or SandboxLimits.from_settings()

    def evaluate(
        self,
        challenge: Challenge,
        source: str,
        test_cases: Optional[Sequence[TestCase]] = None,
    ) -> list[TestResult]:
        """Evaluate a submission.

        Args:
            challenge: The exercise being attempted
            source: Player-submitted Python source
            test_cases: Override vectors; defaults to the challenge's own

        Returns:
            One result per test vector, or a single result when a pre-check,
            the parser or the fast path rejects the submission
        """
        cases = tuple(test_cases) if test_cases is not None else challenge.test_cases
        start = time.perf_counter()
        try:
            results = self._evaluate(challenge, source, cases)
        except Exception as e:
            logger.exception(f"Unexpected judge failure on {challenge.id}")
            results = [self._syntax_result(e)]

        duration = time.perf_counter() - start
        outcome = self._outcome(results)
        record_submission(challenge.id, outcome, duration)
        logger.info(
            f"Judged {challenge.id}: {outcome} "
            f"({sum(r.passed for r in results)}/{len(results)}) in {duration * 1000:.1f}ms"
        )
        return results

    def _evaluate(
        self,
        challenge: Challenge,
        source: str,
        cases: Sequence[TestCase],
    ) -> list[TestResult]:
        precheck = self._precheck(source)
        if precheck:
            return [precheck]

        code = source.strip()
        if challenge.loop_variable and _increment_pattern(challenge.loop_variable).search(code):
            var = challenge.loop_variable
            return [TestResult(
                passed=False,
                message="Incorrect operation detected",
                type=ResultType.FAILURE,
                details=(
                    f"You're incrementing '{var}' instead of decrementing it. "
                    "This will make the infinite loop worse!"
                ),
                hint=f"You need to make '{var}' smaller each iteration, not larger.",
                suggestion=f"Change '{var} += 1' to '{var} -= 1' to count down instead of up.",
                error_kind=ErrorKind.LOGIC_FAILURE,
            )]

        try:
            program = compile_program(code)
        except (SyntaxError, UnsupportedSyntaxError) as e:
            return [self._syntax_result(e)]

        limits = self.limits
        deadline = time.monotonic() + limits.timeout_seconds
        return [
            self._run_case(challenge, program, index, case, limits, deadline)
            for index, case in enumerate(cases, start=1)
        ]

    def _precheck(self, source: str) -> Optional[TestResult]:
        code = (source or "").strip()
        if not code:
            return TestResult(
                passed=False,
                message="No code provided",
                type=ResultType.ERROR,
                details="The code editor is empty. Please write some code before running tests.",
                hint="Start by implementing the function as described in the challenge.",
                suggestion="Look at the function template and replace 'pass' with your implementation.",
                error_kind=ErrorKind.EMPTY,
            )
        if "def " not in code:
            return TestResult(
                passed=False,
                message="Function definition missing",
                type=ResultType.SYNTAX,
                details="Your code should contain a function definition starting with 'def'.",
                hint="Make sure you have a function definition like 'def function_name():'",
                suggestion="Keep the existing function signature and just replace the 'pass' statement.",
                error_kind=ErrorKind.MISSING_FUNCTION,
            )
        if "pass" in code and len(code.split("\n")) <= 5:
            return TestResult(
                passed=False,
                message="Function not implemented",
                type=ResultType.ERROR,
                details="The function still contains 'pass' and appears to be unimplemented.",
                hint="Replace 'pass' with your actual implementation.",
                suggestion="Remove the 'pass' statement and add code that solves the problem.",
                error_kind=ErrorKind.UNIMPLEMENTED,
            )
        return None

    def _run_case(
        self,
        challenge: Challenge,
        program: Program,
        index: int,
        case: TestCase,
        limits: SandboxLimits,
        deadline: float,
    ) -> TestResult:
        interpreter: Optional[Interpreter] = None
        try:
            interpreter = program.instantiate(limits, deadline)
            func = self._find_function(interpreter, challenge)
            if func is None:
                return TestResult(
                    passed=False,
                    message=f"Test {index}: Function not found",
                    type=ResultType.ERROR,
                    details="The expected function was not found in your code.",
                    hint="Make sure your function name matches the template exactly.",
                    suggestion="Check that you haven't changed the function name from the template.",
                    error_kind=ErrorKind.FUNCTION_NOT_FOUND,
                )

            args = copy.deepcopy(case.input)
            actual = interpreter.call(func, args if isinstance(args, list) else [args])
        except SandboxLimitError as e:
            return self._limit_result(challenge, index, e, interpreter)
        except RecursionError:
            return self._runtime_result(
                index, "RecursionError: maximum recursion depth exceeded", interpreter
            )
        except Exception as e:
            return self._runtime_result(index, f"{type(e).__name__}: {e}", interpreter)

        output = list(interpreter.output)
        truncated = interpreter.output_truncated
        if values_equal(actual, case.expected):
            return TestResult(
                passed=True,
                message=f"Test {index}: ✅ {case.description}",
                type=ResultType.SUCCESS,
                details=case.explanation,
                output=output,
                output_truncated=truncated,
            )
        return TestResult(
            passed=False,
            message=f"Test {index}: ❌ {case.description}",
            type=ResultType.FAILURE,
            details=f"Expected: {case.expected!r}, Got: {_short_repr.repr(actual)}",
            hint="Check your logic and try again.",
            suggestion=case.explanation,
            error_kind=ErrorKind.LOGIC_FAILURE,
            output=output,
            output_truncated=truncated,
        )

    @staticmethod
    def _find_function(interpreter: Interpreter, challenge: Challenge) -> Optional[UserFunction]:
        """Exact name first, then the first function the submission declares."""
        func = interpreter.get_function(challenge.function_name)
        if func is not None:
            return func
        declared = interpreter.functions()
        return declared[0] if declared else None

    @staticmethod
    def _runtime_result(
        index: int,
        details: str,
        interpreter: Optional[Interpreter],
    ) -> TestResult:
        return TestResult(
            passed=False,
            message=f"Test {index}: ❌ Runtime Error",
            type=ResultType.ERROR,
            details=details,
            hint="Check for syntax errors, undefined variables, or logic issues.",
            suggestion="Review your code for typos, missing variables, or incorrect syntax.",
            error_kind=ErrorKind.RUNTIME_ERROR,
            output=list(interpreter.output) if interpreter else [],
            output_truncated=bool(interpreter and interpreter.output_truncated),
        )

    @staticmethod
    def _limit_result(
        challenge: Challenge,
        index: int,
        error: SandboxLimitError,
        interpreter: Optional[Interpreter],
    ) -> TestResult:
        output = list(interpreter.output) if interpreter else []
        truncated = bool(interpreter and interpreter.output_truncated)
        if challenge.loop_variable:
            var = challenge.loop_variable
            return TestResult(
                passed=False,
                message=f"Test {index}: Infinite loop still present",
                type=ResultType.ERROR,
                details=(
                    f"{error}. The function doesn't change '{var}' inside the loop "
                    f"in a way that ends it."
                ),
                hint=f"Add a statement inside the while loop that decreases the value of '{var}'.",
                suggestion=f"Try adding '{var} -= 1' inside the while loop, after the print statement.",
                error_kind=ErrorKind.ITERATION_LIMIT,
                output=output,
                output_truncated=truncated,
            )
        return TestResult(
            passed=False,
            message=f"Test {index}: ❌ Execution limit reached",
            type=ResultType.ERROR,
            details=str(error),
            hint="Your code ran for too long or built values that are too large.",
            suggestion="Look for loops that never end or recursion without a base case.",
            error_kind=ErrorKind.ITERATION_LIMIT,
            output=output,
            output_truncated=truncated,
        )

    @staticmethod
    def _syntax_result(error: Exception) -> TestResult:
        return TestResult(
            passed=False,
            message="Syntax Error",
            type=ResultType.SYNTAX,
            details=f"{type(error).__name__}: {error}",
            hint="Check your Python syntax. Make sure indentation is correct and all statements are valid.",
            suggestion="Look for missing colons, incorrect indentation, or typos in your code.",
            error_kind=ErrorKind.SYNTAX_ERROR,
        )

    @staticmethod
    def _outcome(results: list[TestResult]) -> str:
        if results and all(r.passed for r in results):
            return "passed"
        if any(r.type == ResultType.SYNTAX for r in results):
            return "syntax"
        if any(r.type == ResultType.ERROR for r in results):
            return "error"
        return "failed"


# Global judge instance
judge = SolutionJudge()


def evaluate_submission(
    challenge_id: str,
    source: str,
    catalog: Optional[ChallengeCatalog] = None,
) -> list[TestResult]:
    """Judge a submission by challenge id using the global judge.

    Raises:
        ChallengeNotFoundError: No challenge with that id in the catalog
    """
    catalog = catalog or judge.catalog
    challenge = catalog.get_by_id(challenge_id)
    if challenge is None:
        raise ChallengeNotFoundError(f"Challenge {challenge_id} not found", "challenge_not_found")
    return judge.evaluate(challenge, source)
