import random

import pytest

from beatmap_models import NoteKind
from curve import flat_curve
from errors import TransformError
from helpers import hold, make_chart, taps
from pattern_remap import PatternSet, PatternTemplate, find_clusters, match_template, remap


def two_note_set(**changes) -> PatternSet:
    template = PatternTemplate(dist=2.0, keys=1.0, notes=((0.0, 0), (2.0, 1)))
    return PatternSet(templates=(template,), default_unit=4.0, **changes)


def test_template_scales_by_span_over_unit() -> None:
    # 60 BPM: one beat per second. The cluster spans two beats, the unit is four.
    source = make_chart(taps([0.0, 1.0, 2.0]))

    [remapped] = remap(source, [two_note_set()], gamemode="dance-single", weight_curve=flat_curve(), rng=random.Random(4))

    assert [note.time_seconds for note in remapped.notes] == pytest.approx([0.0, 1.0])
    first, second = remapped.notes
    assert (second.lane - first.lane) % 4 == 1
    assert remapped.key_count == 4


def test_clusters_split_on_large_gaps() -> None:
    source = make_chart(taps([0.0, 0.5, 1.0, 5.0, 5.5]))

    clusters = find_clusters(source, gap_beats=1.0)

    assert [len(cluster.rows) for cluster in clusters] == [3, 2]
    assert clusters[0].span == pytest.approx(1.0)
    assert clusters[0].max_gap == pytest.approx(0.5)


def test_first_listed_template_wins() -> None:
    first = PatternTemplate(dist=2.0, keys=1.0, notes=((0.0, 0),))
    second = PatternTemplate(dist=2.0, keys=1.0, notes=((0.0, 1),))
    cluster = find_clusters(make_chart(taps([0.0, 1.0])), gap_beats=2.0)[0]

    assert match_template(cluster, PatternSet(templates=(first, second))) is first


def test_density_threshold_blocks_match() -> None:
    dense_only = PatternTemplate(dist=4.0, keys=1.5, notes=((0.0, 0),))
    sparse = find_clusters(make_chart(taps([0.0, 1.0])), gap_beats=4.0)[0]
    chords = find_clusters(make_chart(taps([0.0, 0.0, 1.0, 1.0], [0, 1, 0, 1])), gap_beats=4.0)[0]

    assert match_template(sparse, PatternSet(templates=(dense_only,))) is None
    assert match_template(chords, PatternSet(templates=(dense_only,))) is dense_only


def test_unmatched_notes_keep_time_and_kind() -> None:
    chord_only = PatternTemplate(dist=1.0, keys=2.0, notes=((0.0, 0), (1.0, 1)))
    source = make_chart([hold(0.0, 2.0, 0)] + list(taps([4.0, 8.0], [1, 2])))

    [remapped] = remap(
        source,
        [PatternSet(templates=(chord_only,), name="Chords")],
        gamemode="pump-single",
        weight_curve=flat_curve(),
        rng=random.Random(2),
    )

    assert [note.time_seconds for note in remapped.notes] == [0.0, 4.0, 8.0]
    assert remapped.notes[0].kind is NoteKind.HOLD
    assert remapped.notes[0].end_time_seconds == 2.0
    assert remapped.description == "Chords"
    assert remapped.gamemode == "pump-single"


def test_each_pattern_set_yields_one_chart() -> None:
    source = make_chart(taps([0.0, 1.0, 2.0]))

    charts = remap(
        source,
        [two_note_set(name="A"), two_note_set(name="B")],
        gamemode="dance-single",
        weight_curve=flat_curve(),
        rng=random.Random(0),
    )

    assert [chart.description for chart in charts] == ["A", "B"]


def test_remap_without_sets_fails() -> None:
    with pytest.raises(TransformError):
        remap(make_chart(()), [], gamemode="dance-single", weight_curve=flat_curve(), rng=random.Random(0))


def test_long_stream_does_not_match_short_template() -> None:
    # Nine rows one beat apart: every gap fits, the eight beat span does not.
    short = PatternTemplate(dist=1.0, keys=1.0, notes=((0.0, 0), (1.0, 1)))
    stream = find_clusters(make_chart(taps([float(beat) for beat in range(9)])), gap_beats=1.0)

    assert len(stream) == 1
    assert stream[0].max_gap == pytest.approx(1.0)
    assert stream[0].span == pytest.approx(8.0)
    assert match_template(stream[0], PatternSet(templates=(short,))) is None


def test_single_row_cluster_keeps_identity() -> None:
    source = make_chart(taps([0.0, 10.0]))
    clusters = find_clusters(source, gap_beats=2.0)

    assert [cluster.span for cluster in clusters] == [0.0, 0.0]
    assert match_template(clusters[0], two_note_set()) is None

    [remapped] = remap(source, [two_note_set()], gamemode="dance-single", weight_curve=flat_curve(), rng=random.Random(1))

    assert [note.time_seconds for note in remapped.notes] == [0.0, 10.0]
