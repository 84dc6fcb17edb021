import pytest

from beatmap_models import NoteEvent
from difficulty_rating import (
    CountMethod,
    DensityMethod,
    GapMethod,
    RatingScale,
    apply_score,
    lookup_label,
    rate,
)
from helpers import make_chart, taps


def test_count_is_notes_per_second() -> None:
    chart = make_chart(taps([0.0, 2.0]), key_count=1, gamemode="")

    score = rate(chart, CountMethod())

    assert score.raw == pytest.approx(1.0)
    assert score.method == "Count"


def test_count_prefers_known_duration() -> None:
    chart = make_chart(taps([0.0, 1.0, 2.0, 3.0]), duration_seconds=8.0)

    assert rate(chart, CountMethod()).raw == pytest.approx(0.5)


@pytest.mark.parametrize("method", [CountMethod(), DensityMethod(), GapMethod()])
def test_empty_chart_rates_zero_even_with_scale(method) -> None:
    chart = make_chart(())

    score = rate(chart, method, scale=RatingScale(1.0, 2.0, 5.0, 6.0))

    assert score.raw == 0.0
    assert score.rescaled == 0.0


def test_doubling_every_note_doubles_density() -> None:
    single = make_chart(taps([0.0, 0.4, 1.0, 2.5]), duration_seconds=4.0)
    doubled_notes = list(single.notes) + [NoteEvent(time_seconds=note.time_seconds, lane=1) for note in single.notes]
    doubled = single.with_notes(doubled_notes)

    for exponent in (1.0, 2.0):
        method = DensityMethod(chord_weights=(1.0,), exponent=exponent)
        assert method.raw_score(doubled) == pytest.approx(2.0 * method.raw_score(single))

    assert rate(doubled, CountMethod()).raw == pytest.approx(2.0 * rate(single, CountMethod()).raw)


def test_chord_weight_reduces_simultaneous_notes() -> None:
    single = make_chart(taps([1.0]), duration_seconds=2.0)
    chord = single.with_notes(taps([1.0, 1.0], [0, 1]))
    method = DensityMethod(chord_weights=(0.5,))

    assert method.raw_score(chord) == pytest.approx(1.5 * method.raw_score(single))


def test_bursts_rate_higher_than_even_notes_with_exponent_above_one() -> None:
    burst = make_chart(taps([index * 0.125 for index in range(8)]), duration_seconds=10.0)
    even = make_chart(taps([float(index) for index in range(8)]), duration_seconds=10.0)

    linear = DensityMethod(exponent=1.0)
    assert linear.raw_score(burst) == pytest.approx(linear.raw_score(even))

    squared = DensityMethod(exponent=2.0)
    assert squared.raw_score(burst) > squared.raw_score(even)


def test_density_band_heights() -> None:
    # One note: height 1 within 0.25 s, 0.5 out to 0.5 s. Integral = 0.5 * 1 + 0.5 * 0.5.
    chart = make_chart(taps([5.0]), duration_seconds=1.0)

    assert DensityMethod().raw_score(chart) == pytest.approx(0.75)


def test_gap_method_maps_row_gaps_through_curve() -> None:
    chart = make_chart(taps([0.0, 1.0, 1.5], [0, 1, 2]))

    # Gaps of 1.0 and 0.5 seconds map to 1.0 and 2.0 on the default curve.
    assert GapMethod().raw_score(chart) == pytest.approx(1.5)


def test_rescale_clamps_to_input_domain() -> None:
    scale = RatingScale(0.0, 10.0, 0.0, 100.0)

    assert scale.apply(5.0) == pytest.approx(50.0)
    assert scale.apply(20.0) == pytest.approx(100.0)
    assert scale.apply(-5.0) == pytest.approx(0.0)


def test_label_lookup_uses_largest_threshold_below_value() -> None:
    thresholds = [(0.0, "Easy"), (4.0, "Hard"), (2.0, "Medium")]

    assert lookup_label(5.0, thresholds) == "Hard"
    assert lookup_label(2.0, thresholds) == "Medium"
    assert lookup_label(-1.0, thresholds) is None


def test_apply_score_sets_meter_and_label() -> None:
    chart = make_chart(taps([0.0, 1.0]))
    score = rate(chart, CountMethod(), scale=RatingScale(0.0, 1.0, 0.0, 3.6), labels=[(3.0, "Hard")])

    rated = apply_score(chart, score, set_meter=True, set_diff=True)

    assert rated.meter == 4
    assert rated.difficulty == "Hard"
    assert rated.score is score
    assert chart.score is None
