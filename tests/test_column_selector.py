import random

import pytest

from column_selector import ColumnSelector, select_columns
from curve import Curve, flat_curve
from errors import TransformError
from pipeline_nodes import DEFAULT_WEIGHT_CURVE


def test_select_returns_requested_count_from_candidates() -> None:
    rng = random.Random(3)
    chosen = select_columns(2, [1, 3, 4], [None] * 5, flat_curve(), rng, now=0.0)

    assert len(chosen) == 2
    assert len(set(chosen)) == 2
    assert set(chosen) <= {1, 3, 4}


def test_select_all_candidates_when_n_equals_count() -> None:
    chosen = select_columns(3, [0, 1, 2], [None] * 3, flat_curve(), random.Random(1), now=0.0)

    assert sorted(chosen) == [0, 1, 2]


def test_select_more_than_available_returns_all() -> None:
    chosen = select_columns(5, [0, 2], [None] * 4, flat_curve(), random.Random(1), now=0.0)

    assert sorted(chosen) == [0, 2]


def test_select_negative_count_fails() -> None:
    with pytest.raises(TransformError):
        select_columns(-1, [0, 1], [None, None], flat_curve(), random.Random(1), now=0.0)


def test_recently_hit_column_is_rarely_chosen() -> None:
    curve = Curve.from_pairs(DEFAULT_WEIGHT_CURVE)
    rng = random.Random(1234)
    hits_on_recent = 0
    for _ in range(300):
        chosen = select_columns(1, [0, 1, 2, 3], [10.0, None, None, None], curve, rng, now=10.0)
        if chosen == [0]:
            hits_on_recent += 1

    assert hits_on_recent < 10


def test_zero_weights_fall_back_to_uniform() -> None:
    curve = Curve.from_pairs([(0.0, 0.0), (1.0, 0.0)])
    rng = random.Random(5)
    seen = set()
    for _ in range(100):
        seen.update(select_columns(1, [0, 1, 2], [None] * 3, curve, rng, now=0.0))

    assert seen == {0, 1, 2}


def test_selector_tracks_last_hits() -> None:
    selector = ColumnSelector(Curve.from_pairs(DEFAULT_WEIGHT_CURVE), 4)
    column = selector.choose([2], 1.5, random.Random(0))

    assert column == 2
    assert selector.last_hit_time(2) == 1.5
    assert selector.weight_for(2, 1.5) == pytest.approx(1.0)
    assert selector.weight_for(0, 1.5) == pytest.approx(300.0)
    assert selector.choose([], 2.0, random.Random(0)) is None
