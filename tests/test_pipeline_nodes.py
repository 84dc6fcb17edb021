import pytest

from difficulty_rating import DensityMethod, GapMethod
from errors import ConfigError
from file_placement import CopyStrategy
from pipeline_nodes import (
    AutoRoute,
    ChainRoute,
    NamedRoute,
    NullRoute,
    RateNode,
    WriteNode,
    parse_node_entry,
    parse_route,
)


def test_parse_routes() -> None:
    assert parse_route("Auto") == AutoRoute()
    assert parse_route("Null") == NullRoute()
    assert parse_route("next") == NamedRoute("next")
    assert isinstance(parse_route({"Chain": [{"Align": {}}]}), ChainRoute)


def test_bad_route_kind_fails() -> None:
    with pytest.raises(ConfigError):
        parse_route({"Jump": []})


def test_rate_node_builds_method() -> None:
    node = parse_node_entry({"Rate": {"method": "Density", "exponent": 2.0, "scale": [0, 10, 1, 20]}})

    assert isinstance(node, RateNode)
    assert isinstance(node.build_method(), DensityMethod)
    assert node.build_scale().apply(5.0) == pytest.approx(10.5)
    gap_node = parse_node_entry({"Rate": {"method": "Gap", "gap_curve": [[0, 4], [1, 1]]}})
    assert isinstance(gap_node.build_method(), GapMethod)


def test_write_defaults() -> None:
    node = parse_node_entry({"Write": {"copy": ["Copy"]}})

    assert isinstance(node, WriteNode)
    assert node.into == NullRoute()
    assert node.copy_strategies == [CopyStrategy.COPY]


@pytest.mark.parametrize(
    "entry",
    [
        {"Rate": {"method": "Magic"}},
        {"Rate": {"unknown_option": 1}},
        {"Rekey": {"gamemode": "not-a-mode"}},
        {"Rekey": {"weight_curve": [[1, 0], [0, 1]]}},
        {"Align": {"snap": 0}},
        {"Select": {"dedup_bias": 2.0}},
        {"Remap": {"pattern_sets": []}},
        {"Align": {"name": "Null"}},
    ],
)
def test_invalid_entries_fail(entry) -> None:
    with pytest.raises(ConfigError):
        parse_node_entry(entry)
