import pytest

from errors import ConfigError, GamemodeMismatchError
from helpers import make_chart, taps
from pipeline_graph import build_graph, run_graph
from pipeline_nodes import SelectNode, WriteNode
from seeding import SeedSource


def two_note_chart():
    return make_chart(taps([0.0, 2.0]), key_count=1, gamemode="")


class RecordingWriter:
    def __init__(self) -> None:
        self.calls = []

    def __call__(self, charts, node: WriteNode):
        self.calls.append((list(charts), node))


def test_rate_then_select_into_null_returns_rated_chart() -> None:
    graph = build_graph(
        [
            {"Rate": {"method": "Count"}},
            {"Select": {"max": 1, "into": "Null"}},
        ]
    )

    [result] = run_graph(graph, [two_note_chart()])

    assert result.score.raw == pytest.approx(1.0)
    assert result.difficulty == "Beginner"


def test_dangling_auto_is_rejected() -> None:
    with pytest.raises(ConfigError):
        build_graph([{"Rate": {}}])


def test_write_is_terminal_by_default() -> None:
    writer = RecordingWriter()
    graph = build_graph([{"Align": {}}, {"Write": {"output": "out"}}])

    results = run_graph(graph, [two_note_chart()], writer=writer)

    assert len(results) == 1
    assert len(writer.calls) == 1
    assert writer.calls[0][1].output.name == "out"


def test_unknown_route_name_is_rejected() -> None:
    with pytest.raises(ConfigError):
        build_graph([{"Rate": {"into": "missing"}}])


def test_duplicate_names_are_rejected() -> None:
    with pytest.raises(ConfigError):
        build_graph([{"Align": {"name": "a"}}, {"Align": {"name": "a", "into": "Null"}}])


def test_cycles_are_rejected() -> None:
    with pytest.raises(ConfigError, match="cycle"):
        build_graph([{"Align": {"name": "a", "into": "b"}}, {"Align": {"name": "b", "into": "a"}}])


def test_unknown_node_kind_is_rejected() -> None:
    with pytest.raises(ConfigError):
        build_graph([{"Shuffle": {}}])


def test_select_needs_enough_names() -> None:
    with pytest.raises(ConfigError):
        build_graph([{"Select": {"max": 3, "diff_names": ["Easy", "Hard"], "into": "Null"}}])


def test_named_route_skips_declaration_order() -> None:
    graph = build_graph(
        [
            {"Rate": {"into": "pick"}},
            {"Align": {"into": "Null"}},
            {"Select": {"name": "pick", "max": 1, "diff_names": [], "into": "Null"}},
        ]
    )

    [result] = run_graph(graph, [two_note_chart()])

    assert result.score is not None
    assert graph.find("pick") is not None
    assert isinstance(graph.find("pick").node, SelectNode)


def test_nest_fans_out_and_merges() -> None:
    graph = build_graph(
        [
            {"Nest": [{"Align": {"snap": 4}}, {"Align": {"snap": 2}}, {"Rate": {}}]},
            {"Select": {"max": 5, "diff_names": [], "into": "Null"}},
        ]
    )

    results = run_graph(graph, [two_note_chart()])

    assert len(results) == 3
    assert len([chart for chart in results if chart.score is not None]) == 1


def test_chain_continues_into_parent_sequence() -> None:
    writer = RecordingWriter()
    graph = build_graph(
        [
            {"Chain": [{"Rate": {}}, {"Select": {"max": 1, "diff_names": []}}]},
            {"Write": {}},
        ]
    )

    results = run_graph(graph, [two_note_chart(), two_note_chart()], writer=writer)

    assert len(results) == 1
    assert len(writer.calls[0][0]) == 1


def test_from_runs_sub_graph_before_stage() -> None:
    graph = build_graph(
        [
            {
                "Select": {
                    "from": {"Nest": [{"Rate": {}}, {"Align": {}}]},
                    "max": 5,
                    "merge": False,
                    "diff_names": [],
                    "into": "Null",
                }
            }
        ]
    )

    results = run_graph(graph, [two_note_chart()])

    assert len(results) == 2


def test_pipe_and_into_sub_graph() -> None:
    graph = build_graph(
        [
            {"Pipe": {"Align": {"into": {"Chain": [{"Rate": {}}]}}}},
            {"Select": {"max": 1, "diff_names": [], "into": "Null"}},
        ]
    )

    [result] = run_graph(graph, [two_note_chart()])

    assert result.score is not None


def test_load_filters_step_types() -> None:
    graph = build_graph([{"Load": {"gamemodes": ["dance-single"]}}, {"Align": {"into": "Null"}}])
    single = make_chart(taps([0.0]), gamemode="dance-single")
    double = make_chart(taps([0.0]), key_count=8, gamemode="dance-double")

    assert run_graph(graph, [single, double]) == [single]

    strict = build_graph([{"Load": {"gamemodes": ["dance-single"], "permissive": False}}, {"Align": {"into": "Null"}}])
    with pytest.raises(GamemodeMismatchError):
        run_graph(strict, [single, double])


def test_fan_out_leaves_input_untouched() -> None:
    source = make_chart(taps([0.0, 0.5, 1.0], [0, 1, 2]))
    graph = build_graph(
        [
            {"Nest": [{"Rekey": {"gamemode": "pump-single"}}, {"Align": {"snap": 1}}]},
            {"Select": {"max": 5, "diff_names": [], "into": "Null"}},
        ]
    )

    results = run_graph(graph, [source])

    assert len(results) == 2
    assert source.notes == tuple(taps([0.0, 0.5, 1.0], [0, 1, 2]))
    assert source.key_count == 4


def test_same_seed_gives_same_output() -> None:
    source = make_chart(taps([index * 0.25 for index in range(40)], [index % 4 for index in range(40)]))
    graph = build_graph([{"Rekey": {"gamemode": "pump-single", "into": "Null"}}])

    first = run_graph(graph, [source], SeedSource(7))
    second = run_graph(graph, [source], SeedSource(7))

    assert first[0].notes == second[0].notes


def test_load_exclude_list_drops_step_types() -> None:
    graph = build_graph([{"Load": {"exclude_gamemodes": ["dance-double"]}}, {"Align": {"into": "Null"}}])
    single = make_chart(taps([0.0]), gamemode="dance-single")
    double = make_chart(taps([0.0]), key_count=8, gamemode="dance-double")

    assert run_graph(graph, [single, double]) == [single]

    with pytest.raises(ConfigError):
        build_graph([{"Load": {"exclude_gamemodes": ["guitar-five"]}}, {"Align": {"into": "Null"}}])
