"""
Scoring helpers for multiple-choice exams.
"""
import math
from typing import List, NamedTuple, Optional


class AnswerScore(NamedTuple):
    is_correct: bool
    points_earned: int


def calculate_answer_score(selected_answer: Optional[str], correct_answer: str, points: int) -> AnswerScore:
    """An unanswered question is simply incorrect."""
    is_correct = selected_answer is not None and selected_answer == correct_answer
    return AnswerScore(is_correct, points if is_correct else 0)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def average(values: List[float]) -> int:
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def calculate_percentage(score: int, total_possible: int) -> int:
    if total_possible == 0:
        return 0
    return round_half_up(score / total_possible * 100)


def is_passed(score: int, passing_score: Optional[int]) -> bool:
    """No passing score configured means everyone passes."""
    if passing_score is None:
        return True
    return score >= passing_score
