"""Coding exercises - the challenge catalog and the sandboxed judge.

Submissions are parsed and run by a restricted interpreter, never exec'd,
and scored against fixed test vectors.
"""

from codequest.game_engine.exercises.challenges import (
    Challenge,
    ChallengeCatalog,
    TestCase,
    default_catalog,
)
from codequest.game_engine.exercises.judge import (
    ErrorKind,
    ResultType,
    SolutionJudge,
    TestResult,
    evaluate_submission,
)

__all__ = [
    "Challenge",
    "ChallengeCatalog",
    "TestCase",
    "default_catalog",
    "ErrorKind",
    "ResultType",
    "SolutionJudge",
    "TestResult",
    "evaluate_submission",
]
