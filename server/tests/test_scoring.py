from spandana.services.scoring import (
    average,
    calculate_answer_score,
    calculate_percentage,
    is_passed,
    round_half_up,
)


def test_correct_answer_earns_its_points():
    result = calculate_answer_score("B", "B", 3)
    assert result.is_correct is True
    assert result.points_earned == 3


def test_wrong_and_missing_answers_earn_nothing():
    assert calculate_answer_score("A", "B", 3) == (False, 0)
    assert calculate_answer_score(None, "B", 3) == (False, 0)


def test_round_half_up_is_not_bankers_rounding():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(2.49) == 2


def test_average_and_percentage():
    assert average([]) == 0
    assert average([1, 2]) == 2
    assert calculate_percentage(1, 3) == 33
    assert calculate_percentage(2, 3) == 67
    assert calculate_percentage(5, 0) == 0


def test_pass_mark():
    assert is_passed(0, None) is True
    assert is_passed(4, 5) is False
    assert is_passed(5, 5) is True
