"""Safety score formula tests."""

import pytest

from safetrails.services.safety_score import compute_safety_score


def test_clean_record_scores_base():
    assert compute_safety_score(0, 0, 0) == 100


def test_exact_formula_before_clamping():
    # 100 - 30 + 2*4 + 1*7
    assert compute_safety_score(3, 4, 7) == 85


def test_bonuses_are_capped():
    # 100 - 50 + 20 (cap) + 30 (cap)
    assert compute_safety_score(5, 1_000, 1_000) == 100
    assert compute_safety_score(6, 1_000, 1_000) == 90


def test_score_is_clamped_to_range():
    assert compute_safety_score(2, 15, 5) == 100
    assert compute_safety_score(10**9, 0, 0) == 0
    assert compute_safety_score(10**9, 10**9, 10**9) == 0


def test_negative_counts_are_rejected():
    with pytest.raises(ValueError):
        compute_safety_score(-1, 0, 0)
