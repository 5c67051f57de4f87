#!/usr/bin/env python3
"""
Report crossing-minimization selection gaps against the reference layering.

Modes:
- candidates: order mismatch of the seed / reversed / virtual / selected
  rank orders, the oracle-best among seed/reversed/virtual, and the
  selection gap (selected - oracle-best).
- passes: parity of every sweep pass of the selected trial, the best pass
  under a composite ranking, and the gain the last pass left on the table.
"""

from __future__ import annotations

import argparse
import sys

from engine_runner import CommandReferenceEngine, CommandTraceEngine
from layer_parity import layer_parity
from layering_trace import (
    CANDIDATE_TAGS,
    parse_candidate_trace,
    parse_graph_direction,
    parse_selected_trial,
)
from parity_errors import ParityError
from parity_fixtures import (
    add_fixture_arguments,
    fixture_label,
    fixtures_from_args,
    positive_int,
    read_fixture,
    write_json,
)
from reference_layers import LAYER_SOURCES, build_reference_layering, orient_reference

ORACLE_POOL = ("seed", "reversed", "virtual")
SELECTED = "selected"


def candidate_gap(layers_by_candidate, reference, selected=SELECTED, pool=ORACLE_POOL):
    mismatch = {
        name: layer_parity(layers, reference).order_mismatch_layers
        for name, layers in layers_by_candidate.items()
    }
    oracle_best = min(mismatch[name] for name in pool)
    report = dict(mismatch)
    report["oracle_best"] = oracle_best
    report["selection_gap"] = mismatch[selected] - oracle_best
    return report


def pass_rank_key(entry):
    row, parity = entry
    return (
        parity.composition_mismatch_layers,
        parity.order_mismatch_layers,
        parity.avg_order_displacement,
        -parity.exact_order_match_rate,
        row.pass_index,
    )


def pass_gap(passes, reference):
    if not passes:
        raise ValueError("pass gap needs at least one pass")
    scored = [(row, layer_parity(row.layers, reference)) for row in passes]
    last_row, last = scored[-1]
    best_row, best = min(scored, key=pass_rank_key)
    oracle_best = min(parity.order_mismatch_layers for _, parity in scored)
    return {
        "pass_count": len(scored),
        "last_pass_index": last_row.pass_index,
        "last": last,
        "best_pass_index": best_row.pass_index,
        "best": best,
        "oracle_best": oracle_best,
        "selection_gap": last.order_mismatch_layers - oracle_best,
        "gain_order_mismatch": last.order_mismatch_layers - best.order_mismatch_layers,
        "passes": [
            {
                "pass_index": row.pass_index,
                "direction": row.direction,
                "changed": row.changed,
                "layered_crossings": row.layered_crossings,
                "global_crossings": row.global_crossings,
                "parity": parity,
            }
            for row, parity in scored
        ],
    }


def compare_candidates(
    fixture, trace_engine, reference_engine, layer_source="auto", trial_count=None, orient=False
):
    source = read_fixture(fixture)
    label = fixture_label(fixture)
    graph, layers = parse_candidate_trace(trace_engine.trace(source, trial_count), label)
    reference, _, origin = build_reference_layering(
        graph, parse_graph_direction(source), reference_engine, label, layer_source
    )
    if orient:
        reference = orient_reference(layers[SELECTED], reference)
    return {
        "fixture": label,
        "reference_source": origin,
        "candidates": candidate_gap(layers, reference),
    }


def compare_passes(
    fixture, trace_engine, reference_engine, layer_source="auto", trial_count=None, orient=False
):
    source = read_fixture(fixture)
    label = fixture_label(fixture)
    trace = parse_selected_trial(trace_engine.trace(source, trial_count), label)
    reference, _, origin = build_reference_layering(
        trace.graph, parse_graph_direction(source), reference_engine, label, layer_source,
        profile="passes",
    )
    if orient:
        reference = orient_reference(trace.passes[-1].layers, reference)
    report = pass_gap(trace.passes, reference)
    report["fixture"] = label
    report["selected_source"] = trace.selected_source
    report["selected_trial"] = trace.selected_trial
    report["reference_source"] = origin
    return report


def summarize_candidates(cases):
    names = list(CANDIDATE_TAGS) + ["oracle_best", "selection_gap"]
    totals = {name: 0 for name in names}
    selected_equals_oracle = 0
    lines = []
    for case in cases:
        row = case["candidates"]
        for name in names:
            totals[name] += row[name]
        if row["selection_gap"] == 0:
            selected_equals_oracle += 1
        lines.append(
            f"{case['fixture']} seed={row['seed']} reversed={row['reversed']} "
            f"virtual={row['virtual']} selected={row['selected']} "
            f"oracle={row['oracle_best']} gap={row['selection_gap']}"
        )
    summary = {
        "fixtures": len(cases),
        "per_candidate_order_mismatch": totals,
        "selected_equals_oracle": selected_equals_oracle,
    }
    lines += [
        "",
        "=== summary ===",
        f"fixtures={len(cases)}",
        f"candidate_order_mismatch seed={totals['seed']} reversed={totals['reversed']} "
        f"virtual={totals['virtual']} selected={totals['selected']} "
        f"oracle={totals['oracle_best']}",
        f"selection_gap_total={totals['selection_gap']}",
        f"selected_equals_oracle={selected_equals_oracle}/{len(cases)}",
    ]
    return summary, lines


def summarize_passes(cases):
    totals = {
        "last_composition": 0,
        "last_order": 0,
        "best_composition": 0,
        "best_order": 0,
        "gain_order_mismatch": 0,
        "selection_gap": 0,
    }
    improved = 0
    lines = []
    for case in cases:
        last = case["last"]
        best = case["best"]
        totals["last_composition"] += last.composition_mismatch_layers
        totals["last_order"] += last.order_mismatch_layers
        totals["best_composition"] += best.composition_mismatch_layers
        totals["best_order"] += best.order_mismatch_layers
        totals["gain_order_mismatch"] += case["gain_order_mismatch"]
        totals["selection_gap"] += case["selection_gap"]
        if case["gain_order_mismatch"] > 0:
            improved += 1
        lines.append(
            " ".join([
                case["fixture"],
                f"selected={case['selected_source']}#{case['selected_trial']}",
                f"passes={case['pass_count']}",
                f"best_pass={case['best_pass_index']}",
                f"last_comp={last.composition_mismatch_layers}",
                f"best_comp={best.composition_mismatch_layers}",
                f"last_order={last.order_mismatch_layers}",
                f"best_order={best.order_mismatch_layers}",
                f"gain_order={case['gain_order_mismatch']}",
                f"last_exact={last.exact_order_match_rate:.4f}",
                f"best_exact={best.exact_order_match_rate:.4f}",
                f"last_disp={last.avg_order_displacement:.4f}",
                f"best_disp={best.avg_order_displacement:.4f}",
            ])
        )
    summary = dict(totals)
    summary["fixtures"] = len(cases)
    summary["improved_by_best_pass"] = improved
    lines += [
        "",
        "=== summary ===",
        f"fixtures={len(cases)}",
        f"improved_by_best_pass={improved}/{len(cases)}",
        f"last_totals composition={totals['last_composition']} order={totals['last_order']}",
        f"best_totals composition={totals['best_composition']} order={totals['best_order']}",
        f"order_mismatch_gain_total={totals['gain_order_mismatch']}",
        f"pass_selection_gap_total={totals['selection_gap']}",
    ]
    return summary, lines


def pass_case_json(case):
    data = dict(case)
    data["last"] = case["last"].as_dict()
    data["best"] = case["best"].as_dict()
    data["passes"] = [
        dict(row, parity=row["parity"].as_dict()) for row in case["passes"]
    ]
    return data


def run_report(
    mode, fixtures, trace_engine, reference_engine, layer_source="auto", trial_count=None, orient=False
):
    if mode == "passes":
        cases = [
            compare_passes(f, trace_engine, reference_engine, layer_source, trial_count, orient)
            for f in fixtures
        ]
        summary, lines = summarize_passes(cases)
        return {"cases": [pass_case_json(c) for c in cases], "summary": summary}, lines
    cases = [
        compare_candidates(f, trace_engine, reference_engine, layer_source, trial_count, orient)
        for f in fixtures
    ]
    summary, lines = summarize_candidates(cases)
    return {"cases": cases, "summary": summary}, lines


def main():
    parser = argparse.ArgumentParser(
        description="Report crossing candidate / pass selection gaps versus the reference layering"
    )
    parser.add_argument("--mode", choices=("candidates", "passes"), default="candidates")
    add_fixture_arguments(parser)
    parser.add_argument("--trial-count", type=positive_int, help="override trial count")
    parser.add_argument(
        "--upstream-layers",
        choices=LAYER_SOURCES,
        default="auto",
        help="reference layer source: explicit rank logs, coordinates, or auto",
    )
    parser.add_argument(
        "--orient-reference",
        action="store_true",
        help="compare against the reversed reference layering when it is closer",
    )
    parser.add_argument("--json", dest="json_path", help="write JSON report to this path")
    args = parser.parse_args()

    fixtures = fixtures_from_args(args)
    if not fixtures:
        print("No fixtures found.", file=sys.stderr)
        return 2

    try:
        report, lines = run_report(
            args.mode,
            fixtures,
            CommandTraceEngine(),
            CommandReferenceEngine(),
            args.upstream_layers,
            args.trial_count,
            args.orient_reference,
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
