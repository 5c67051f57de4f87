"""
Rank-by-rank layering parity.
"""

import pytest

from layer_parity import (
    layer_parity,
    orientation_parity,
    rank_layer_mismatch,
    rank_parity,
    sum_results,
)


def test_identical_layerings_match_exactly():
    layers = [["a"], ["b", "c", "d"], ["e", "f"]]
    result = layer_parity(layers, [list(layer) for layer in layers])

    assert result.composition_mismatch_layers == 0
    assert result.order_mismatch_layers == 0
    assert result.exact_order_match_rate == 1.0
    assert result.avg_order_displacement == 0.0


def test_reversed_layer_is_order_mismatch_not_composition():
    result = layer_parity([["a", "b", "c"]], [["c", "b", "a"]])

    assert result.composition_mismatch_layers == 0
    assert result.order_mismatch_layers == 1
    assert result.exact_order_match_rate == 0.0
    assert result.avg_order_displacement == pytest.approx(4 / 3)


def test_missing_rank_counts_as_empty_layer():
    result = layer_parity([["a", "b"]], [["a", "b"], ["c"]])

    assert result.composition_mismatch_layers == 1
    assert result.comparable_layers == 1
    assert result.exact_order_match_layers == 1
    assert result.layer_slots == 2


def test_swapped_pair_in_first_rank():
    result = layer_parity([["n2", "n1"], ["n3"]], [["n1", "n2"], ["n3"]])

    assert result.composition_mismatch_layers == 0
    assert result.order_mismatch_layers == 1
    assert result.exact_order_match_rate == 0.5
    assert result.avg_order_displacement == pytest.approx(2 / 3)


def test_composition_mismatch_skips_displacement():
    result = layer_parity([["a", "x"], ["b"]], [["a", "b"], ["x"]])

    assert result.composition_mismatch_layers == 2
    assert result.comparable_layers == 0
    assert result.displacement_count == 0
    assert result.exact_order_match_rate == 0.0
    assert result.avg_order_displacement == 0.0


def test_empty_layerings_use_zero_sentinels():
    result = layer_parity([], [])

    assert result.layer_slots == 0
    assert result.exact_order_match_rate == 0.0
    assert result.avg_order_displacement == 0.0


def test_rank_parity_counts_nodes_on_same_rank():
    candidate = [["a"], ["b", "c"], ["d"]]
    reference = [["a"], ["b"], ["c", "d"]]

    nodes = rank_parity(candidate, reference)

    assert nodes == {"shared": 4, "exact": 3, "displacement_sum": 1}


def test_sum_results_accumulates_counters_and_rates():
    first = layer_parity([["a", "b"]], [["b", "a"]])
    second = layer_parity([["a"], ["b"]], [["a"], ["b"], ["c"]])

    totals = sum_results([first, second])

    assert totals["cases"] == 2
    assert totals["order_mismatch_layers"] == 1
    assert totals["composition_mismatch_layers"] == 1
    assert totals["comparable_layers"] == 3
    assert totals["layer_slots"] == 4
    assert totals["exact_order_match_rate"] == pytest.approx(2 / 3)
    assert totals["avg_order_displacement"] == pytest.approx(2 / 4)


def test_as_dict_includes_derived_rates():
    data = layer_parity([["a", "b"]], [["a", "b"]]).as_dict()

    assert data["exact_order_match_rate"] == 1.0
    assert data["avg_order_displacement"] == 0.0
    assert data["comparable_layers"] == 1


def test_rank_layer_mismatch_counts_reordered_rank():
    candidate = [["N0"], ["N4", "N1"], ["N2"]]
    reference = [["N0"], ["N1", "N4"], ["N2"]]

    assert layer_parity(candidate, reference).composition_mismatch_layers == 0
    assert rank_layer_mismatch(candidate, reference) == 1


def test_rank_layer_mismatch_treats_missing_rank_as_empty():
    assert rank_layer_mismatch([["a"], ["b"]], [["a"], ["b"], ["c"]]) == 1
    assert rank_layer_mismatch([], []) == 0
    assert rank_layer_mismatch([["a", "b"]], [["a", "b"]]) == 0


def test_orientation_parity_splits_missing_from_mismatched():
    edges = [("a", "b"), ("b", "c"), ("c", "a"), ("c", "d")]
    candidate = {("a", "b"), ("b", "c"), ("a", "c")}
    reference = {("a", "b"), ("c", "b"), ("a", "c"), ("c", "d")}

    result = orientation_parity(edges, candidate, reference)

    assert result["comparable"] == 3
    assert result["matched"] == 2
    assert result["mismatched"] == 1
    assert result["missing"] == 1
    assert result["mismatch_edges"] == [["b", "c"]]
    assert result["missing_edges"] == [["c", "d"]]
    assert result["match_rate"] == pytest.approx(2 / 3)


def test_orientation_parity_with_nothing_comparable():
    result = orientation_parity([("a", "b")], set(), {("a", "b")})

    assert result["comparable"] == 0
    assert result["match_rate"] == 0.0
