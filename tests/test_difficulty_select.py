import itertools
import random

import pytest

from beatmap_models import DifficultyScore
from difficulty_select import Prefer, assign_labels, cap, chart_score, dedup, min_gap, select
from errors import ConfigError
from helpers import make_chart, taps


def scored(value: float, title: str = "Test Song"):
    return make_chart(taps([0.0]), title=title).with_changes(score=DifficultyScore(raw=value, rescaled=value))


def scores_of(charts):
    return [chart_score(chart) for chart in charts]


def test_selection_keeps_everything_under_the_limit() -> None:
    charts = [scored(3.0), scored(1.0), scored(2.0)]

    [selected] = select([charts], max_count=5, diff_names=())

    assert scores_of(selected) == [1.0, 2.0, 3.0]


def test_zero_dedup_distance_never_merges() -> None:
    charts = [scored(1.0), scored(1.0), scored(1.0)]

    assert len(dedup(charts, dedup_dist=0.0, dedup_bias=0.5)) == 3


def test_dedup_keeps_chart_nearest_to_bias_point() -> None:
    charts = [scored(1.0), scored(1.5), scored(5.0)]

    assert scores_of(dedup(charts, dedup_dist=1.0, dedup_bias=0.0)) == [1.0, 5.0]
    assert scores_of(dedup(charts, dedup_dist=1.0, dedup_bias=1.0)) == [1.5, 5.0]
    # Equidistant from the bias point: the easier chart stays.
    assert scores_of(dedup(charts, dedup_dist=1.0, dedup_bias=0.5)) == [1.0, 5.0]


def test_spread_matches_brute_force_optimum() -> None:
    rng = random.Random(99)
    for _ in range(40):
        values = [round(rng.uniform(0.0, 20.0), 2) for _ in range(rng.randint(3, 8))]
        limit = rng.randint(2, len(values))
        charts = [scored(value) for value in values]

        kept = cap(charts, max_count=limit, prefer=Prefer.SPREAD)

        best = max(min_gap(combo) for combo in itertools.combinations(values, limit))
        assert len(kept) == limit
        assert min_gap(scores_of(kept)) == pytest.approx(best)


def test_spread_ties_remove_the_lower_score() -> None:
    charts = [scored(0.0), scored(1.0), scored(2.0), scored(3.0)]

    assert scores_of(cap(charts, max_count=3, prefer=Prefer.SPREAD)) == [1.0, 2.0, 3.0]


def test_other_preferences() -> None:
    charts = [scored(value) for value in (1.0, 4.0, 6.0, 9.0)]

    assert scores_of(cap(charts, max_count=2, prefer=Prefer.EASIEST)) == [1.0, 4.0]
    assert scores_of(cap(charts, max_count=2, prefer=Prefer.HARDEST)) == [6.0, 9.0]
    assert scores_of(cap(charts, max_count=2, prefer=Prefer.NEAREST, target=5.0)) == [4.0, 6.0]


def test_labels_follow_ascending_score() -> None:
    charts = [scored(7.0), scored(2.0), scored(4.0)]

    labelled = assign_labels(charts, ["Easy", "Medium", "Hard", "Challenge"])

    assert [chart.difficulty for chart in labelled] == ["Easy", "Medium", "Hard"]
    assert scores_of(labelled) == [2.0, 4.0, 7.0]


def test_more_survivors_than_names_fails() -> None:
    with pytest.raises(ConfigError):
        assign_labels([scored(1.0), scored(2.0)], ["Easy"])


def test_empty_names_leave_labels_alone() -> None:
    charts = [scored(2.0).with_changes(difficulty="Hard"), scored(1.0)]

    labelled = assign_labels(charts, [])

    assert [chart.difficulty for chart in labelled] == ["Edit", "Hard"]


def test_groups_without_merge_are_selected_independently() -> None:
    first = [scored(1.0), scored(2.0), scored(3.0)]
    second = [scored(10.0), scored(20.0)]

    selected = select([first, second], max_count=1, prefer=Prefer.HARDEST, diff_names=["Hard"], merge=False)

    assert [scores_of(group) for group in selected] == [[3.0], [20.0]]
    assert all(group[0].difficulty == "Hard" for group in selected)


def test_unrated_charts_count_as_zero() -> None:
    unrated = make_chart(taps([0.0]))

    [selected] = select([[scored(2.0), unrated]], max_count=1, prefer=Prefer.EASIEST, diff_names=())

    assert selected[0].score is None
