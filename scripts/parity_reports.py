#!/usr/bin/env python3
"""
Phase parity reports: rank layers on built-in kernels, then cycle-breaking
edge orientation, seed layers and placement-major coordinates on the stress
corpus.

Every report returns (data, lines). The lines follow the summary protocol
parsed by parity_gate: `=== <case> ===` headers and `key=value` rows.
"""

from __future__ import annotations

import argparse
import json
import sys

from engine_runner import CommandReferenceEngine, CommandTraceEngine
from geometry_parity import placement_parity
from layer_parity import (
    layer_parity,
    orientation_parity,
    rank_layer_mismatch,
    rank_parity,
    sum_results,
)
from layering_trace import (
    parse_graph_direction,
    parse_input_graph,
    parse_orientation_trace,
    parse_placement_trace,
    parse_rank_layers,
    parse_seed_strategy,
    split_records,
)
from parity_errors import ParityError
from parity_fixtures import (
    KERNELS,
    add_fixture_arguments,
    fixture_label,
    fixtures_from_args,
    positive_int,
    read_fixture,
    write_json,
)
from reference_layers import (
    LAYER_SOURCES,
    build_reference_layering,
    reference_edge_directions,
)

PHASES = ("rank", "cycle", "seed", "placement")
MAX_LISTED_EDGES = 12


def rank_metrics(candidate, reference) -> dict:
    nodes = rank_parity(candidate, reference)
    nodes["composition_mismatch"] = rank_layer_mismatch(candidate, reference)
    return nodes


def rank_layer_case(name, direction, graph, trace_engine, reference_engine):
    records = split_records(trace_engine.kernel_trace(name))
    candidate = parse_rank_layers(records, "RANK_LAYER", name)
    reference, _, _ = build_reference_layering(
        graph, direction, reference_engine, name, "coordinates",
        bucketing="adaptive", profile="kernel",
    )
    forced, _, _ = build_reference_layering(
        graph, direction, reference_engine, name, "coordinates",
        bucketing="adaptive", profile="kernel-force-model-order",
    )
    return {
        "case": name,
        "seed_strategy": parse_seed_strategy(records),
        "reference_layers": reference,
        "reference_layers_force_model_order": forced,
        "candidate_layers": candidate,
        **rank_metrics(candidate, reference),
        "force_model_order": rank_metrics(candidate, forced),
    }


def rank_layer_report(trace_engine, reference_engine, kernels=None):
    kernels = KERNELS if kernels is None else kernels
    cases = []
    lines = []
    for name, (direction, graph) in kernels.items():
        case = rank_layer_case(name, direction, graph, trace_engine, reference_engine)
        forced = case["force_model_order"]
        cases.append(case)
        lines += [
            "",
            f"=== {name} ===",
            f"seed_strategy={case['seed_strategy']}",
            f"reference_layers={json.dumps(case['reference_layers'])}",
            "reference_layers_force_model_order="
            f"{json.dumps(case['reference_layers_force_model_order'])}",
            f"candidate_layers={json.dumps(case['candidate_layers'])}",
            f"shared={case['shared']} exact={case['exact']} "
            f"displacement_sum={case['displacement_sum']} "
            f"composition_mismatch={case['composition_mismatch']}",
            f"force_model_order_shared={forced['shared']} "
            f"force_model_order_exact={forced['exact']} "
            f"force_model_order_displacement_sum={forced['displacement_sum']} "
            f"force_model_order_composition_mismatch={forced['composition_mismatch']}",
        ]
    return {"cases": cases}, lines


def edge_list(edges):
    return ",".join(f"{source}->{target}" for source, target in edges[:MAX_LISTED_EDGES])


def cycle_orientation_report(fixtures, trace_engine, reference_engine, trial_count=None):
    cases = []
    lines = []
    for fixture in fixtures:
        source = read_fixture(fixture)
        label = fixture_label(fixture)
        direction = parse_graph_direction(source)
        trace = parse_orientation_trace(trace_engine.trace(source, trial_count), label)
        reference = reference_edge_directions(trace.graph, direction, reference_engine, label)
        edges = trace.graph.edges
        case = {
            "fixture": label,
            "direction": direction,
            "edge_counts": {
                "input": len(edges),
                "candidate": len(trace.oriented),
                "candidate_model_order": len(trace.model_order),
                "reference": len(reference),
            },
            "orientation": orientation_parity(edges, trace.oriented, reference),
            "model_order_orientation": orientation_parity(edges, trace.model_order, reference),
        }
        cases.append(case)
        counts = case["edge_counts"]
        lines += [
            "",
            f"=== {label} ===",
            f"direction={direction} edges input/candidate/candidate_model_order/reference="
            f"{counts['input']}/{counts['candidate']}/"
            f"{counts['candidate_model_order']}/{counts['reference']}",
        ]
        for key in ("orientation", "model_order_orientation"):
            parity = case[key]
            lines.append(
                f"{key} comparable={parity['comparable']} matched={parity['matched']} "
                f"mismatch={parity['mismatched']} missing={parity['missing']} "
                f"match_rate={parity['match_rate']:.4f}"
            )
        prefixes = (
            ("mismatch_edges", "orientation", "mismatch_edges"),
            ("missing_edges", "orientation", "missing_edges"),
            ("model_order_mismatch_edges", "model_order_orientation", "mismatch_edges"),
            ("model_order_missing_edges", "model_order_orientation", "missing_edges"),
        )
        for name, key, field_name in prefixes:
            listed = case[key][field_name]
            if listed:
                lines.append(f"{name}={edge_list(listed)}")

    count = len(cases)
    summary = {"fixtures": count}
    for key, prefix in (("orientation", ""), ("model_order_orientation", "model_order_")):
        rows = [case[key] for case in cases]
        summary[f"avg_{prefix}match_rate"] = (
            sum(row["match_rate"] for row in rows) / count if count else 0.0
        )
        summary[f"total_{prefix}mismatch"] = sum(row["mismatched"] for row in rows)
        summary[f"total_{prefix}comparable"] = sum(row["comparable"] for row in rows)
    lines += [
        "",
        "=== summary ===",
        f"fixtures={count}",
        f"avg_match_rate={summary['avg_match_rate']:.4f}",
        f"avg_model_order_match_rate={summary['avg_model_order_match_rate']:.4f}",
        f"total_mismatch={summary['total_mismatch']}/{summary['total_comparable']}",
        "total_model_order_mismatch="
        f"{summary['total_model_order_mismatch']}/{summary['total_model_order_comparable']}",
    ]
    return {"cases": cases, "summary": summary}, lines


def seed_layer_report(fixtures, trace_engine, reference_engine, layer_source="auto", trial_count=None):
    cases = []
    results = []
    lines = []
    for fixture in fixtures:
        source = read_fixture(fixture)
        label = fixture_label(fixture)
        records = split_records(trace_engine.trace(source, trial_count))
        graph = parse_input_graph(records, label)
        candidate = parse_rank_layers(records, "SEED_LAYER", label)
        reference, _, origin = build_reference_layering(
            graph, parse_graph_direction(source), reference_engine, label, layer_source
        )
        result = layer_parity(candidate, reference)
        results.append(result)
        cases.append({"fixture": label, "reference_source": origin, "parity": result.as_dict()})
        lines += [
            "",
            f"=== {label} ===",
            f"layers candidate/reference={result.candidate_layers}/{result.reference_layers}",
            f"order_mismatch_layers={result.order_mismatch_layers} "
            f"composition_mismatch_layers={result.composition_mismatch_layers}",
        ]
    totals = sum_results(results)
    slots = totals["layer_slots"]
    lines += [
        "",
        "=== summary ===",
        f"fixtures={totals['cases']}",
        f"total_order_mismatch={totals['order_mismatch_layers']}/{slots}",
        f"total_composition_mismatch={totals['composition_mismatch_layers']}/{slots}",
        f"avg_order_displacement={totals['avg_order_displacement']:.4f}",
    ]
    return {"cases": cases, "summary": totals}, lines


def placement_report(fixtures, trace_engine, reference_engine, trial_count=None):
    cases = []
    lines = []
    for fixture in fixtures:
        source = read_fixture(fixture)
        label = fixture_label(fixture)
        direction = parse_graph_direction(source)
        trace = parse_placement_trace(trace_engine.trace(source, trial_count), label)
        _, rows, _ = build_reference_layering(
            trace.graph, direction, reference_engine, label, "coordinates"
        )
        case = placement_parity(trace, rows, direction)
        case["fixture"] = label
        cases.append(case)
        lines += [
            "",
            f"=== {label} ===",
            f"major_strategy={case['strategy']}",
            f"shared_nodes={case['shared']} "
            f"layers candidate/reference={case['candidate_layers']}/{case['reference_layers']}",
            f"layer_mismatch={case['layer_mismatch']} inversion_rate={case['inversion_rate']:.4f}",
        ]
    avg_inversion_rate = (
        sum(case["inversion_rate"] for case in cases) / len(cases) if cases else 0.0
    )
    summary = {
        "fixtures": len(cases),
        "total_shared_nodes": sum(case["shared"] for case in cases),
        "total_layer_mismatch": sum(case["layer_mismatch"] for case in cases),
        "avg_inversion_rate": avg_inversion_rate,
    }
    lines += [
        "",
        "=== summary ===",
        f"fixtures={summary['fixtures']}",
        f"total_shared_nodes={summary['total_shared_nodes']}",
        f"total_layer_mismatch={summary['total_layer_mismatch']}",
        f"avg_inversion_rate={avg_inversion_rate:.4f}",
    ]
    return {"cases": cases, "summary": summary}, lines


def main():
    parser = argparse.ArgumentParser(description="Print a phase parity report")
    parser.add_argument("--phase", choices=PHASES, default="rank")
    add_fixture_arguments(parser)
    parser.add_argument("--trial-count", type=positive_int, help="override trial count")
    parser.add_argument("--upstream-layers", choices=LAYER_SOURCES, default="auto")
    parser.add_argument("--json", dest="json_path", help="write JSON report to this path")
    args = parser.parse_args()

    trace_engine = CommandTraceEngine()
    reference_engine = CommandReferenceEngine()
    try:
        if args.phase == "rank":
            report, lines = rank_layer_report(trace_engine, reference_engine)
        else:
            fixtures = fixtures_from_args(args)
            if not fixtures:
                print("No fixtures found.", file=sys.stderr)
                return 2
            if args.phase == "cycle":
                report, lines = cycle_orientation_report(
                    fixtures, trace_engine, reference_engine, args.trial_count
                )
            elif args.phase == "seed":
                report, lines = seed_layer_report(
                    fixtures, trace_engine, reference_engine,
                    args.upstream_layers, args.trial_count,
                )
            else:
                report, lines = placement_report(
                    fixtures, trace_engine, reference_engine, args.trial_count
                )
    except ParityError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    for line in lines:
        print(line)
    if args.json_path:
        write_json(args.json_path, report)
        print(f"wrote_json={args.json_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
