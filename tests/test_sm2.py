import pytest

from utils.sm2 import DAY_MS, SRSParams, compute_srs_update, new_srs_state

NOW = 1_700_000_000_000


def _grade_sequence(grades):
    state = new_srs_state(NOW)
    for grade in grades:
        state = compute_srs_update(state, grade, NOW)
    return state


def test_first_two_passing_grades_use_fixed_intervals():
    first = _grade_sequence(["good"])
    assert (first.reps, first.interval_days, first.due_at) == (1, 1, NOW + DAY_MS)
    second = _grade_sequence(["good", "good"])
    assert (second.reps, second.interval_days) == (2, 3)


def test_good_interval_rounds_half_up():
    # 3 * 2.5 * 1.8 = 13.5
    third = _grade_sequence(["good", "good", "good"])
    assert third.interval_days == 14
    assert third.ease == 2.5


def test_easy_raises_ease_up_to_ceiling():
    state = _grade_sequence(["easy"])
    assert state.ease == pytest.approx(2.65)
    state = _grade_sequence(["easy", "easy", "easy"])
    assert state.ease == pytest.approx(2.8)


def test_hard_lowers_ease_and_keeps_interval_scale():
    state = _grade_sequence(["good", "good", "hard"])
    assert state.ease == pytest.approx(2.35)
    # 3 * 2.35 * 1.0 = 7.05
    assert state.interval_days == 7


def test_again_resets_reps_and_counts_lapse():
    state = _grade_sequence(["good", "good", "good", "again"])
    assert state.reps == 0
    assert state.lapses == 1
    assert state.interval_days == 0
    assert state.ease == pytest.approx(2.3)
    assert state.due_at == NOW + 10 * 60 * 1000


def test_ease_never_drops_below_floor():
    state = _grade_sequence(["again"] * 10)
    assert state.ease == pytest.approx(1.3)
    assert state.lapses == 10


def test_again_delay_comes_from_params():
    state = compute_srs_update(new_srs_state(NOW), "again", NOW, SRSParams(again_delay_minutes=1))
    assert state.due_at == NOW + 60 * 1000


def test_unknown_grade_is_rejected():
    with pytest.raises(ValueError):
        compute_srs_update(new_srs_state(NOW), "perfect", NOW)
