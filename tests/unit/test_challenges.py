"""Unit tests for the challenge catalog."""

import pytest

from codequest.game_engine.exercises.challenges import (
    CHALLENGES,
    Category,
    Challenge,
    ChallengeCatalog,
    Difficulty,
    get_all_challenges,
    get_challenge_by_id,
)


class TestChallengeCatalog:
    """Tests for catalog lookups."""

    def test_bundled_order(self, catalog):
        assert [c.id for c in catalog.get_all()] == ["array-sum", "find-bug", "list-comprehension"]

    def test_get_by_index_wraps(self, catalog):
        assert catalog.get_by_index(0).id == "array-sum"
        assert catalog.get_by_index(3).id == "array-sum"
        assert catalog.get_by_index(5).id == "list-comprehension"

    def test_get_by_id(self, catalog):
        assert catalog.get_by_id("find-bug").title == "Debug the Infinite Loop"
        assert catalog.get_by_id("nope") is None

    def test_empty_catalog_rejected(self):
        with pytest.raises(ValueError):
            ChallengeCatalog([])

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            ChallengeCatalog([CHALLENGES[0], CHALLENGES[0]])

    def test_module_helpers(self):
        assert len(get_all_challenges()) == 3
        assert get_challenge_by_id("list-comprehension").points == 300


class TestChallenge:
    """Tests for challenge definitions."""

    def test_metadata(self, catalog):
        array_sum, find_bug, even_squares = catalog.get_all()
        assert (array_sum.difficulty, array_sum.category, array_sum.points) == (
            Difficulty.JUNIOR, Category.ALGORITHM, 100,
        )
        assert (find_bug.difficulty, find_bug.category, find_bug.points) == (
            Difficulty.MID, Category.DEBUG, 200,
        )
        assert (even_squares.difficulty, even_squares.category, even_squares.points) == (
            Difficulty.SENIOR, Category.ALGORITHM, 300,
        )

    def test_function_names(self, catalog):
        assert [c.function_name for c in catalog] == ["array_sum", "count_down", "even_squares"]

    def test_function_name_defaults_from_id(self):
        challenge = Challenge(
            id="two-sum",
            title="Two Sum",
            description="",
            difficulty=Difficulty.JUNIOR,
            category=Category.ALGORITHM,
            template="",
            solution="",
            test_cases=(),
            points=50,
        )
        assert challenge.function_name == "two_sum"

    def test_only_debug_exercise_has_loop_variable(self, catalog):
        assert [c.loop_variable for c in catalog] == [None, "n", None]

    def test_to_dict_hides_solution(self, catalog):
        data = catalog.get_by_id("array-sum").to_dict()
        assert "solution" not in data
        assert data["difficulty"] == "Junior"
        assert data["test_cases"][0] == {
            "input": [[1, 2, 3, 4]],
            "expected": 10,
            "description": "Sum of positive integers [1, 2, 3, 4]",
            "explanation": "1 + 2 + 3 + 4 = 10",
        }

    def test_to_dict_with_solution(self, catalog):
        data = catalog.get_by_id("array-sum").to_dict(include_solution=True)
        assert "return sum(numbers)" in data["solution"]
