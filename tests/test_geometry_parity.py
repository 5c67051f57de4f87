"""
Geometry parity: normalized drift, pairwise inversions and placement-major checks.
"""
import json
import sys

import pytest

from conftest import DIAMOND_LAYERS, rows_for_layers
from geometry_parity import (
    count_pair_inversions,
    geometry_parity,
    load_layout,
    main as geometry_main,
    placement_parity,
    sort_by_axis,
)
from layering_trace import parse_placement_trace
from parity_errors import InsufficientDataError


def test_identical_positions_have_no_drift():
    positions = {"A": (0.0, 0.0), "B": (10.0, 5.0), "C": (20.0, 10.0)}

    result = geometry_parity(positions, dict(positions))

    assert result["shared"] == 3
    assert result["rmse"] == 0.0
    assert result["max_distance"] == 0.0
    assert result["inversions"] == 0
    assert result["pair_count"] == 3
    assert result["span_ratio"] == {"x": 1.0, "y": 1.0}


def test_scaled_layout_normalizes_away():
    reference = {"A": (0.0, 0.0), "B": (10.0, 10.0)}
    candidate = {"A": (0.0, 0.0), "B": (30.0, 50.0)}

    result = geometry_parity(reference, candidate)

    assert result["rmse"] == pytest.approx(0.0)
    assert result["span_ratio"]["x"] == pytest.approx(3.0)
    assert result["span_ratio"]["y"] == pytest.approx(5.0)


def test_inversion_count_is_symmetric():
    reference = {"A": (0.0, 0.0), "B": (1.0, 0.0), "C": (2.0, 0.0), "D": (3.0, 0.0)}
    candidate = {"A": (3.0, 0.0), "B": (0.0, 0.0), "C": (2.0, 0.0), "D": (1.0, 0.0)}

    forward = geometry_parity(reference, candidate)
    backward = geometry_parity(candidate, reference)

    assert forward["inversions"] == backward["inversions"] == 4
    assert forward["inversion_rate"] == pytest.approx(4 / 6)


def test_drift_nodes_sorted_descending():
    reference = {"A": (0.0, 0.0), "B": (1.0, 1.0), "C": (0.5, 0.5)}
    candidate = {"A": (0.0, 0.0), "B": (1.0, 1.0), "C": (0.5, 0.9)}

    result = geometry_parity(reference, candidate, top=2)

    assert [row["id"] for row in result["top_nodes"]][0] == "C"
    assert len(result["top_nodes"]) == 2
    distances = [row["distance"] for row in result["top_nodes"]]
    assert distances == sorted(distances, reverse=True)


def test_fewer_than_two_shared_nodes_raises():
    with pytest.raises(InsufficientDataError):
        geometry_parity({"A": (0.0, 0.0), "B": (1.0, 1.0)}, {"A": (0.0, 0.0), "Z": (1.0, 1.0)})


def test_sort_by_axis_breaks_ties_by_minor_then_id():
    positions = {"B": (1.0, 0.0), "A": (1.0, 0.0), "C": (1.0, -1.0), "D": (0.0, 5.0)}

    assert sort_by_axis(positions, positions, "x") == ["D", "C", "A", "B"]
    assert sort_by_axis(positions, positions, "y") == ["C", "A", "B", "D"]


def test_count_pair_inversions_reversed_order():
    assert count_pair_inversions(["a", "b", "c"], ["c", "b", "a"]) == 3


def test_load_layout_uses_centers_and_skips_hidden(tmp_path):
    path = tmp_path / "layout.json"
    path.write_text(json.dumps({
        "nodes": [
            {"id": "A", "x": 0, "y": 0, "width": 20, "height": 10},
            {"id": "B", "x": 50, "y": 0, "width": 20, "height": 10, "hidden": True},
            {"id": "G", "x": 0, "y": 0, "anchor_subgraph": 0},
        ]
    }))

    assert load_layout(path) == {"A": (10.0, 5.0)}


def test_placement_parity_matches_reference(diamond_trace):
    trace = parse_placement_trace(diamond_trace, "fx")
    rows = [(row["id"], row["x"], row["y"]) for row in rows_for_layers(DIAMOND_LAYERS)]

    result = placement_parity(trace, rows, "LR")

    assert result["strategy"] == "network-simplex"
    assert result["shared"] == 4
    assert result["candidate_layers"] == result["reference_layers"] == 3
    assert result["layer_mismatch"] == 0
    assert result["inversion_rate"] == 0.0


def test_placement_parity_vertical_uses_y_major(diamond_trace):
    trace = parse_placement_trace(diamond_trace, "fx")
    rows = [
        (row["id"], row["x"], row["y"])
        for row in rows_for_layers([["A"], ["B"], ["C"], ["D"]], axis="y")
    ]

    result = placement_parity(trace, rows, "TB")

    assert result["reference_layers"] == 4
    assert result["layer_mismatch"] == 3
    assert result["inversions"] == 0


def test_cli_compares_two_dumps(tmp_path, monkeypatch, capsys):
    nodes = [{"id": n, "x": i * 50, "y": 0, "width": 10, "height": 10} for i, n in enumerate("ABC")]
    reference = tmp_path / "reference.json"
    candidate = tmp_path / "candidate.json"
    report = tmp_path / "report.json"
    reference.write_text(json.dumps({"nodes": nodes}))
    candidate.write_text(json.dumps({"nodes": list(reversed(nodes))}))
    monkeypatch.setattr(sys, "argv", [
        "geometry_parity",
        "--candidate-layout", str(candidate),
        "--reference-layout", str(reference),
        "--output", str(report),
    ])

    assert geometry_main() == 0

    out = capsys.readouterr().out
    assert "shared_labeled_nodes=3" in out
    assert "inversion_rate=0.0000 (0/3)" in out
    assert json.loads(report.read_text())["shared"] == 3
