#!/usr/bin/env python3
"""Rank-by-rank parity between two layerings of the same node set.

Each rank is first compared by composition (the set of node ids). Only ranks
whose composition agrees are scored for order: an exact sequence match or an
order mismatch, plus the per-node index displacement against the reference.
Ranks missing on either side count as empty layers.

The cycle-breaking check scores edge orientation rather than layers.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class ParityResult:
    composition_mismatch_layers: int
    order_mismatch_layers: int
    exact_order_match_layers: int
    comparable_layers: int
    displacement_sum: int
    displacement_count: int
    candidate_layers: int
    reference_layers: int

    @property
    def exact_order_match_rate(self) -> float:
        if self.comparable_layers == 0:
            return 0.0
        return self.exact_order_match_layers / self.comparable_layers

    @property
    def avg_order_displacement(self) -> float:
        if self.displacement_count == 0:
            return 0.0
        return self.displacement_sum / self.displacement_count

    @property
    def layer_slots(self) -> int:
        return max(self.candidate_layers, self.reference_layers)

    def as_dict(self) -> dict:
        data = asdict(self)
        data["exact_order_match_rate"] = self.exact_order_match_rate
        data["avg_order_displacement"] = self.avg_order_displacement
        return data


def layer_at(layers, rank):
    return layers[rank] if rank < len(layers) else []


def layer_parity(candidate, reference) -> ParityResult:
    composition_mismatch = 0
    order_mismatch = 0
    exact = 0
    comparable = 0
    displacement_sum = 0
    displacement_count = 0

    for rank in range(max(len(candidate), len(reference))):
        local = layer_at(candidate, rank)
        upstream = layer_at(reference, rank)
        if set(local) != set(upstream):
            composition_mismatch += 1
            continue
        comparable += 1
        if list(local) == list(upstream):
            exact += 1
        else:
            order_mismatch += 1
        upstream_index = {}
        for index, node_id in enumerate(upstream):
            upstream_index.setdefault(node_id, index)
        for index, node_id in enumerate(local):
            displacement_sum += abs(index - upstream_index[node_id])
            displacement_count += 1

    return ParityResult(
        composition_mismatch_layers=composition_mismatch,
        order_mismatch_layers=order_mismatch,
        exact_order_match_layers=exact,
        comparable_layers=comparable,
        displacement_sum=displacement_sum,
        displacement_count=displacement_count,
        candidate_layers=len(candidate),
        reference_layers=len(reference),
    )


def rank_layer_mismatch(candidate, reference) -> int:
    """Count ranks whose full node sequence differs; order matters here."""
    return sum(
        1
        for rank in range(max(len(candidate), len(reference)))
        if list(layer_at(candidate, rank)) != list(layer_at(reference, rank))
    )


def rank_index(layers):
    ranks = {}
    for rank, layer in enumerate(layers):
        for node_id in layer:
            ranks[node_id] = rank
    return ranks


def rank_parity(candidate, reference) -> dict:
    """Node-level rank agreement: how many shared nodes sit on the same rank."""
    local_ranks = rank_index(candidate)
    shared = 0
    exact = 0
    displacement_sum = 0
    for node_id, upstream_rank in rank_index(reference).items():
        local_rank = local_ranks.get(node_id)
        if local_rank is None:
            continue
        shared += 1
        if local_rank == upstream_rank:
            exact += 1
        displacement_sum += abs(local_rank - upstream_rank)
    return {
        "shared": shared,
        "exact": exact,
        "displacement_sum": displacement_sum,
    }


def sum_results(results) -> dict:
    totals = {
        "cases": 0,
        "composition_mismatch_layers": 0,
        "order_mismatch_layers": 0,
        "exact_order_match_layers": 0,
        "comparable_layers": 0,
        "displacement_sum": 0,
        "displacement_count": 0,
        "layer_slots": 0,
    }
    for result in results:
        totals["cases"] += 1
        totals["composition_mismatch_layers"] += result.composition_mismatch_layers
        totals["order_mismatch_layers"] += result.order_mismatch_layers
        totals["exact_order_match_layers"] += result.exact_order_match_layers
        totals["comparable_layers"] += result.comparable_layers
        totals["displacement_sum"] += result.displacement_sum
        totals["displacement_count"] += result.displacement_count
        totals["layer_slots"] += result.layer_slots
    totals["exact_order_match_rate"] = (
        totals["exact_order_match_layers"] / totals["comparable_layers"]
        if totals["comparable_layers"]
        else 0.0
    )
    totals["avg_order_displacement"] = (
        totals["displacement_sum"] / totals["displacement_count"]
        if totals["displacement_count"]
        else 0.0
    )
    return totals


def edge_direction(edge, oriented) -> int:
    source, target = edge
    if (source, target) in oriented:
        return 1
    if (target, source) in oriented:
        return -1
    return 0


def orientation_parity(edges, candidate, reference) -> dict:
    """Agreement on which way each input edge points after cycle breaking.

    Edges absent from either orientation set are counted as missing and left
    out of the comparable total.
    """
    comparable = 0
    matched = 0
    mismatch_edges = []
    missing_edges = []
    for edge in edges:
        local = edge_direction(edge, candidate)
        upstream = edge_direction(edge, reference)
        if local == 0 or upstream == 0:
            missing_edges.append(list(edge))
            continue
        comparable += 1
        if local == upstream:
            matched += 1
        else:
            mismatch_edges.append(list(edge))
    return {
        "comparable": comparable,
        "matched": matched,
        "mismatched": len(mismatch_edges),
        "missing": len(missing_edges),
        "match_rate": matched / comparable if comparable else 0.0,
        "mismatch_edges": mismatch_edges,
        "missing_edges": missing_edges,
    }
