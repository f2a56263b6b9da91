"""Bundled coding challenges.

The catalog is built once at startup and handed to the engine and the judge.
Arena challenge slots pick their exercise by index, wrapping around the
catalog when there are more slots than challenges.
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Iterator, Optional, Sequence


class Difficulty(str, Enum):
    """Challenge difficulty levels."""
    JUNIOR = "Junior"
    MID = "Mid"
    SENIOR = "Senior"


class Category(str, Enum):
    """Kind of exercise."""
    ALGORITHM = "Algorithm"
    DEBUG = "Debug"
    OPTIMIZE = "Optimize"


@dataclass(frozen=True)
class TestCase:
    """One test vector: positional arguments and the expected return value."""
    __test__ = False  # Not a pytest class

    input: Any
    expected: Any
    description: Optional[str] = None
    explanation: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "input": self.input,
            "expected": self.expected,
            "description": self.description,
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class Challenge:
    """An exercise definition. Never mutated after the catalog is built."""
    id: str
    title: str
    description: str
    difficulty: Difficulty
    category: Category
    template: str
    solution: str
    test_cases: tuple[TestCase, ...]
    points: int
    hints: tuple[str, ...] = ()
    learning_objectives: tuple[str, ...] = ()
    common_mistakes: tuple[str, ...] = ()
    language: str = "python"
    function_name: str = ""  # Defaults to the id with dashes as underscores
    loop_variable: Optional[str] = None  # Set for the infinite-loop exercise

    def __post_init__(self) -> None:
        if not self.function_name:
            object.__setattr__(self, "function_name", self.id.replace("-", "_"))

    def to_dict(self, include_solution: bool = False) -> dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "difficulty": self.difficulty.value,
            "category": self.category.value,
            "language": self.language,
            "template": self.template,
            "function_name": self.function_name,
            "test_cases": [tc.to_dict() for tc in self.test_cases],
            "points": self.points,
            "hints": list(self.hints),
            "learning_objectives": list(self.learning_objectives),
            "common_mistakes": list(self.common_mistakes),
        }
        if include_solution:
            data["solution"] = self.solution
        return data


class ChallengeCatalog:
    """Read-only, ordered registry of challenges."""

    def __init__(self, challenges: Sequence[Challenge]):
        if not challenges:
            raise ValueError("A catalog needs at least one challenge")
        self._challenges: tuple[Challenge, ...] = tuple(challenges)
        self._by_id = {c.id: c for c in self._challenges}
        if len(self._by_id) != len(self._challenges):
            raise ValueError("Challenge ids must be unique")

    def get_all(self) -> tuple[Challenge, ...]:
        return self._challenges

    def get_by_index(self, index: int) -> Challenge:
        """Round-robin lookup: index wraps modulo catalog size."""
        return self._challenges[index % len(self._challenges)]

    def get_by_id(self, challenge_id: str) -> Optional[Challenge]:
        return self._by_id.get(challenge_id)

    def __len__(self) -> int:
        return len(self._challenges)

    def __iter__(self) -> Iterator[Challenge]:
        return iter(self._challenges)


CHALLENGES: tuple[Challenge, ...] = (
    Challenge(
        id="array-sum",
        title="Array Sum Algorithm",
        description=(
            "Calculate the total sum of all numbers in a list. This fundamental "
            "operation is used in data analysis, statistics, and many algorithms."
        ),
        difficulty=Difficulty.JUNIOR,
        category=Category.ALGORITHM,
        template='''def array_sum(numbers):
  """
  Calculate the sum of all numbers in a list.

  Args:
      numbers (list): A list of integers or floats

  Returns:
      int/float: The sum of all numbers in the list

  Examples:
      array_sum([1, 2, 3]) -> 6
      array_sum([]) -> 0
      array_sum([-1, 1]) -> 0
  """
  # TODO: Implement the function
  # Hint: You can use a loop or Python's built-in sum() function
  pass''',
        solution='''def array_sum(numbers):
  """Calculate the sum of all numbers in a list."""
  return sum(numbers)''',
        test_cases=(
            TestCase(
                input=[[1, 2, 3, 4]],
                expected=10,
                description="Sum of positive integers [1, 2, 3, 4]",
                explanation="1 + 2 + 3 + 4 = 10",
            ),
            TestCase(
                input=[[0, -1, 5]],
                expected=4,
                description="Sum with negative numbers [0, -1, 5]",
                explanation="0 + (-1) + 5 = 4",
            ),
            TestCase(
                input=[[]],
                expected=0,
                description="Empty list should return 0",
                explanation="Sum of no numbers is 0 by definition",
            ),
            TestCase(
                input=[[42]],
                expected=42,
                description="Single element list [42]",
                explanation="Sum of one number is the number itself",
            ),
            TestCase(
                input=[[-5, -10, -3]],
                expected=-18,
                description="All negative numbers [-5, -10, -3]",
                explanation="(-5) + (-10) + (-3) = -18",
            ),
        ),
        points=100,
        hints=(
            "Python has a built-in sum() function that can add all numbers in a list",
            "Alternative: Use a for loop with a running total: total = 0; for num in numbers: total += num",
            "Remember that sum([]) returns 0, which handles the empty list case automatically",
            "The sum() function works with both integers and floating-point numbers",
        ),
        learning_objectives=(
            "Understand list iteration and aggregation",
            "Learn about Python's built-in functions",
            "Practice handling edge cases (empty lists)",
        ),
        common_mistakes=(
            "Forgetting to handle empty lists",
            "Not returning the result",
            "Using incorrect variable names",
        ),
    ),
    Challenge(
        id="find-bug",
        title="Debug the Infinite Loop",
        description=(
            "Fix a common programming bug that causes an infinite loop. "
            "count_down(n) should print n, n-1, ..., 1 and then return \"Done!\"; "
            "count_down(0) returns \"Done!\" immediately. Replace the placeholder "
            "inside the loop with the statement that lets it finish."
        ),
        difficulty=Difficulty.MID,
        category=Category.DEBUG,
        template='''def count_down(n):
  while n > 0:
      print(n)
      pass  # BUG: nothing changes n, so the loop never ends
  return "Done!"''',
        solution='''def count_down(n):
  """Count down from n to 1, printing each number."""
  while n > 0:
      print(n)
      n -= 1  # Fixed: decrement n to eventually exit the loop
  return "Done!"''',
        test_cases=(
            TestCase(
                input=[3],
                expected="Done!",
                description="Countdown from 3",
                explanation="Should print 3, 2, 1 then return 'Done!'",
            ),
            TestCase(
                input=[1],
                expected="Done!",
                description="Countdown from 1",
                explanation="Should print 1 then return 'Done!'",
            ),
            TestCase(
                input=[0],
                expected="Done!",
                description="No countdown needed for 0",
                explanation="Loop condition n > 0 is false, so skip loop",
            ),
        ),
        points=200,
        hints=(
            "Look at the while loop condition: 'while n > 0'. What makes this condition eventually become false?",
            "The variable 'n' needs to change inside the loop, otherwise the condition 'n > 0' will always be true",
            "Add 'n -= 1' (or 'n = n - 1') inside the while loop to decrement n each iteration",
            "This is a classic infinite loop bug - the loop control variable isn't being modified",
        ),
        learning_objectives=(
            "Understand loop control variables",
            "Learn to identify and fix infinite loops",
            "Practice debugging systematic thinking",
        ),
        common_mistakes=(
            "Not modifying the loop control variable",
            "Incrementing instead of decrementing",
            "Placing the decrement outside the loop",
        ),
        function_name="count_down",
        loop_variable="n",
    ),
    Challenge(
        id="list-comprehension",
        title="List Comprehension Mastery",
        description=(
            "Create an elegant one-liner using Python's list comprehension to "
            "filter and transform data. This is a powerful Pythonic pattern."
        ),
        difficulty=Difficulty.SENIOR,
        category=Category.ALGORITHM,
        template='''def even_squares(n):
  """
  Generate a list of squares for all even numbers from 0 to n (inclusive).

  Args:
      n (int): Upper limit (inclusive)

  Returns:
      list: Squares of even numbers from 0 to n

  Examples:
      even_squares(5) -> [0, 4, 16]  # squares of 0, 2, 4
      even_squares(8) -> [0, 4, 16, 36, 64]  # squares of 0, 2, 4, 6, 8
      even_squares(1) -> [0]  # only 0 is even from 0 to 1
  """
  # TODO: Use list comprehension to solve this in one line
  # Pattern: [expression for item in iterable if condition]
  # You need: square the number, iterate through range, filter for even
  pass''',
        solution='''def even_squares(n):
  """Generate squares of even numbers from 0 to n using list comprehension."""
  return [x**2 for x in range(n+1) if x % 2 == 0]''',
        test_cases=(
            TestCase(
                input=[5],
                expected=[0, 4, 16],
                description="Even squares from 0 to 5: [0², 2², 4²]",
                explanation="Even numbers 0,2,4 squared give 0,4,16",
            ),
            TestCase(
                input=[8],
                expected=[0, 4, 16, 36, 64],
                description="Even squares from 0 to 8: [0², 2², 4², 6², 8²]",
                explanation="Even numbers 0,2,4,6,8 squared give 0,4,16,36,64",
            ),
            TestCase(
                input=[0],
                expected=[0],
                description="Only 0 is even from 0 to 0",
                explanation="Range is just [0], 0 is even, 0² = 0",
            ),
            TestCase(
                input=[1],
                expected=[0],
                description="Only 0 is even from 0 to 1",
                explanation="Range is [0,1], only 0 is even, 0² = 0",
            ),
            TestCase(
                input=[10],
                expected=[0, 4, 16, 36, 64, 100],
                description="Even squares from 0 to 10",
                explanation="Even numbers 0,2,4,6,8,10 squared",
            ),
        ),
        points=300,
        hints=(
            "List comprehension syntax: [expression for item in iterable if condition]",
            "You need three parts: x**2 (square), range(n+1) (numbers 0 to n), x % 2 == 0 (even check)",
            "Remember range(n+1) to include n in the range (range is exclusive of the end)",
            "The modulo operator % checks divisibility: x % 2 == 0 means x is even",
            "Complete solution: [x**2 for x in range(n+1) if x % 2 == 0]",
        ),
        learning_objectives=(
            "Master Python list comprehensions",
            "Understand filtering with conditions",
            "Practice mathematical operations in functional style",
        ),
        common_mistakes=(
            "Using range(n) instead of range(n+1)",
            "Forgetting the condition 'if x % 2 == 0'",
            "Using x*x instead of x**2 (both work, but ** is more Pythonic)",
        ),
        function_name="even_squares",
    ),
)


@lru_cache
def default_catalog() -> ChallengeCatalog:
    """The process-wide catalog of bundled challenges."""
    return ChallengeCatalog(CHALLENGES)


def get_all_challenges() -> list[Challenge]:
    """Get all bundled challenges."""
    return list(default_catalog().get_all())


def get_challenge_by_id(challenge_id: str) -> Optional[Challenge]:
    """Get a bundled challenge by its id."""
    return default_catalog().get_by_id(challenge_id)
