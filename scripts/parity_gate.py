#!/usr/bin/env python3
"""
Layer parity gates.

Runs the phase reports in a fixed order and checks each one's summary lines
against fixed thresholds; the first violation stops the run. The
candidate-gap report then runs ungated, and a final baseline gate compares
run-wide counters against a stored baseline JSON.
"""

from __future__ import annotations

import argparse
import json
import re
import sys
from pathlib import Path

from crossing_gap import run_report
from engine_runner import ROOT, CommandReferenceEngine, CommandTraceEngine
from parity_errors import GateViolation, ParityError
from parity_fixtures import (
    add_fixture_arguments,
    fixtures_from_args,
    positive_int,
    write_json,
)
from parity_reports import (
    cycle_orientation_report,
    placement_report,
    rank_layer_report,
    seed_layer_report,
)
from reference_layers import LAYER_SOURCES

DEFAULT_BASELINE = ROOT / "tests" / "layer_parity_baseline.json"

EXPECTED_SEED_STRATEGY = "native-feedback"
EXPECTED_RANK_COMPOSITION_MISMATCH = {
    "fanout": 0,
    "feedback_mesh": 0,
    "long_span": 1,
}
EXPECTED_FORCE_MODEL_ORDER_MISMATCH = {
    "fanout": 2,
    "feedback_mesh": 0,
    "long_span": 0,
}
# Case -> reference layering the candidate ranks must reproduce exactly.
EXPECTED_LAYERING_MATCH = {
    "fanout": "reference_layers",
    "feedback_mesh": "reference_layers",
    "long_span": "reference_layers_force_model_order",
}
MAX_CYCLE_ORIENTATION_MISMATCH = 0
MAX_SEED_ORDER_MISMATCH = 0
MAX_SEED_COMPOSITION_MISMATCH = 0
MAX_PLACEMENT_LAYER_MISMATCH = 0
MAX_PLACEMENT_INVERSION_RATE = 0.0333

STRICT_METRICS = {
    "rank_composition_mismatch",
    "rank_force_model_order_composition_mismatch",
    "cycle_orientation_mismatch",
    "seed_order_mismatch",
    "seed_composition_mismatch",
    "placement_layer_mismatch",
    "candidate_selected_order_mismatch",
    "selection_gap_total",
}

RELATIVE_METRICS = {
    "seed_avg_order_displacement",
    "placement_avg_inversion_rate",
}

CASE_HEADER_RE = re.compile(r"^===\s+(\S+)\s+===$")
RANK_METRICS_RE = re.compile(
    r"^shared=\d+\s+exact=\d+\s+displacement_sum=\d+\s+composition_mismatch=(\d+)$"
)
FORCE_METRICS_RE = re.compile(
    r"^force_model_order_shared=\d+\s+force_model_order_exact=\d+\s+"
    r"force_model_order_displacement_sum=\d+\s+"
    r"force_model_order_composition_mismatch=(\d+)$"
)


def clean_lines(lines):
    return [line.strip() for line in lines if line.strip()]


def find_line(lines, key, gate, case="summary"):
    prefix = f"{key}="
    for line in clean_lines(lines):
        if line.startswith(prefix):
            return line
    raise GateViolation(gate, case, key, "summary line", "missing")


def parse_ratio(lines, key, gate):
    line = find_line(lines, key, gate)
    match = re.match(rf"^{re.escape(key)}=(\d+)/(\d+)$", line)
    if not match:
        raise GateViolation(gate, "summary", key, "<n>/<m>", line)
    return int(match.group(1)), int(match.group(2))


def parse_count(lines, key, gate):
    line = find_line(lines, key, gate)
    match = re.match(rf"^{re.escape(key)}=(-?\d+)$", line)
    if not match:
        raise GateViolation(gate, "summary", key, "<n>", line)
    return int(match.group(1))


def parse_float(lines, key, gate):
    line = find_line(lines, key, gate)
    match = re.match(rf"^{re.escape(key)}=([0-9.]+)$", line)
    if not match:
        raise GateViolation(gate, "summary", key, "<float>", line)
    try:
        return float(match.group(1))
    except ValueError:
        raise GateViolation(gate, "summary", key, "<float>", line) from None


def case_blocks(lines):
    blocks = {}
    current = None
    for line in clean_lines(lines):
        match = CASE_HEADER_RE.match(line)
        if match:
            current = match.group(1)
            blocks[current] = []
            continue
        if current is not None:
            blocks[current].append(line)
    return blocks


def block_value(block, key):
    prefix = f"{key}="
    return next((line[len(prefix):] for line in block if line.startswith(prefix)), None)


def block_count(block, pattern):
    for line in block:
        match = pattern.match(line)
        if match:
            return int(match.group(1))
    return "missing"


def block_layers(block, key, gate, case):
    raw = block_value(block, key)
    if raw is None:
        raise GateViolation(gate, case, key, "layer array", "missing")
    try:
        layers = json.loads(raw)
    except json.JSONDecodeError:
        raise GateViolation(gate, case, key, "layer array", raw) from None
    if not isinstance(layers, list):
        raise GateViolation(gate, case, key, "layer array", raw)
    return layers


def check_rank_layer_gate(lines):
    gate = "rank-layer"
    blocks = case_blocks(lines)
    for case, expected in EXPECTED_RANK_COMPOSITION_MISMATCH.items():
        if case not in blocks:
            raise GateViolation(gate, case, "case", "present", "missing")
        block = blocks[case]
        strategy = block_value(block, "seed_strategy") or ""
        if strategy != EXPECTED_SEED_STRATEGY:
            raise GateViolation(gate, case, "seed_strategy", EXPECTED_SEED_STRATEGY, strategy)
        observed = block_count(block, RANK_METRICS_RE)
        if observed != expected:
            raise GateViolation(gate, case, "composition_mismatch", expected, observed)
        expected_forced = EXPECTED_FORCE_MODEL_ORDER_MISMATCH[case]
        observed = block_count(block, FORCE_METRICS_RE)
        if observed != expected_forced:
            raise GateViolation(
                gate, case, "force_model_order_composition_mismatch", expected_forced, observed
            )

    for case, reference_key in EXPECTED_LAYERING_MATCH.items():
        block = blocks[case]
        candidate = block_layers(block, "candidate_layers", gate, case)
        reference = block_layers(block, reference_key, gate, case)
        if candidate != reference:
            raise GateViolation(
                gate, case, "candidate_layers", f"equal to {reference_key}", "diverged"
            )


def check_cycle_orientation_gate(lines):
    gate = "cycle-orientation"
    mismatched, comparable = parse_ratio(lines, "total_mismatch", gate)
    if mismatched > MAX_CYCLE_ORIENTATION_MISMATCH:
        raise GateViolation(
            gate, "summary", "total_mismatch",
            f"<= {MAX_CYCLE_ORIENTATION_MISMATCH}", f"{mismatched}/{comparable}",
        )


def check_seed_layer_gate(lines):
    gate = "seed-layer"
    for key, limit in (
        ("total_order_mismatch", MAX_SEED_ORDER_MISMATCH),
        ("total_composition_mismatch", MAX_SEED_COMPOSITION_MISMATCH),
    ):
        mismatched, comparable = parse_ratio(lines, key, gate)
        if comparable <= 0:
            raise GateViolation(gate, "summary", key, "denominator > 0", f"{mismatched}/{comparable}")
        if mismatched > limit:
            raise GateViolation(gate, "summary", key, f"<= {limit}", f"{mismatched}/{comparable}")


def check_placement_gate(lines):
    gate = "placement-major"
    layer_mismatch = parse_count(lines, "total_layer_mismatch", gate)
    if layer_mismatch > MAX_PLACEMENT_LAYER_MISMATCH:
        raise GateViolation(
            gate, "summary", "total_layer_mismatch",
            f"<= {MAX_PLACEMENT_LAYER_MISMATCH}", layer_mismatch,
        )
    inversion_rate = parse_float(lines, "avg_inversion_rate", gate)
    if inversion_rate > MAX_PLACEMENT_INVERSION_RATE:
        raise GateViolation(
            gate, "summary", "avg_inversion_rate",
            f"<= {MAX_PLACEMENT_INVERSION_RATE:.4f}", f"{inversion_rate:.4f}",
        )


def compare_metrics(baseline, current, rel_tol, abs_tol):
    regressions = []
    for metric, base_val in baseline.items():
        cur_val = current.get(metric)
        if cur_val is None:
            continue
        if metric in STRICT_METRICS:
            if cur_val > base_val:
                regressions.append((metric, base_val, cur_val, f"<= {base_val}"))
        elif metric in RELATIVE_METRICS and isinstance(base_val, (int, float)):
            limit = max(base_val * (1.0 + rel_tol), base_val + abs_tol)
            if cur_val > limit:
                regressions.append((metric, base_val, cur_val, f"<= {limit:.4f}"))
    return regressions


def check_baseline_gate(baseline, metrics, rel_tol, abs_tol):
    regressions = compare_metrics(baseline.get("metrics", {}), metrics, rel_tol, abs_tol)
    if regressions:
        metric, _, cur_val, limit = regressions[0]
        raise GateViolation("baseline", "summary", metric, limit, cur_val)


def run_gates(fixtures, trace_engine, reference_engine, layer_source="auto", trial_count=None):
    """Run every report and its gate in order; return (metrics, reports).

    The candidate-gap report has no gate of its own: its totals feed the
    baseline comparison only.
    """
    reports = {}

    rank, lines = rank_layer_report(trace_engine, reference_engine)
    check_rank_layer_gate(lines)
    reports["rank_layers"] = rank

    cycle, lines = cycle_orientation_report(fixtures, trace_engine, reference_engine, trial_count)
    check_cycle_orientation_gate(lines)
    reports["cycle_orientation"] = cycle

    seed, lines = seed_layer_report(
        fixtures, trace_engine, reference_engine, layer_source, trial_count
    )
    check_seed_layer_gate(lines)
    reports["seed_layers"] = seed

    placement, lines = placement_report(fixtures, trace_engine, reference_engine, trial_count)
    check_placement_gate(lines)
    reports["placement"] = placement

    candidates, _ = run_report(
        "candidates", fixtures, trace_engine, reference_engine, layer_source, trial_count
    )
    reports["candidates"] = candidates

    candidate_totals = candidates["summary"]["per_candidate_order_mismatch"]
    metrics = {
        "rank_composition_mismatch": sum(c["composition_mismatch"] for c in rank["cases"]),
        "rank_force_model_order_composition_mismatch": sum(
            c["force_model_order"]["composition_mismatch"] for c in rank["cases"]
        ),
        "cycle_orientation_mismatch": cycle["summary"]["total_mismatch"],
        "seed_order_mismatch": seed["summary"]["order_mismatch_layers"],
        "seed_composition_mismatch": seed["summary"]["composition_mismatch_layers"],
        "seed_avg_order_displacement": seed["summary"]["avg_order_displacement"],
        "placement_layer_mismatch": placement["summary"]["total_layer_mismatch"],
        "placement_avg_inversion_rate": placement["summary"]["avg_inversion_rate"],
        "candidate_selected_order_mismatch": candidate_totals["selected"],
        "selection_gap_total": candidate_totals["selection_gap"],
    }
    return metrics, reports


def main():
    parser = argparse.ArgumentParser(description="Gate layer parity against fixed thresholds")
    add_fixture_arguments(parser)
    parser.add_argument("--trial-count", type=positive_int, help="override trial count")
    parser.add_argument("--upstream-layers", choices=LAYER_SOURCES, default="auto")
    parser.add_argument("--json", dest="json_path", help="write JSON report to this path")
    parser.add_argument(
        "--baseline",
        default=str(DEFAULT_BASELINE),
        help="baseline JSON file",
    )
    parser.add_argument(
        "--rel-tol",
        type=float,
        default=0.10,
        help="relative tolerance for soft metrics (default 0.10)",
    )
    parser.add_argument(
        "--abs-tol",
        type=float,
        default=0.01,
        help="absolute tolerance for soft metrics (default 0.01)",
    )
    parser.add_argument(
        "--write-baseline",
        action="store_true",
        help="write baseline file instead of gating",
    )
    args = parser.parse_args()

    fixtures = fixtures_from_args(args)
    if not fixtures:
        print("No fixtures found.", file=sys.stderr)
        return 2

    baseline_path = Path(args.baseline)
    try:
        metrics, reports = run_gates(
            fixtures,
            CommandTraceEngine(),
            CommandReferenceEngine(),
            args.upstream_layers,
            args.trial_count,
        )
        if args.json_path:
            write_json(args.json_path, {"metrics": metrics, "reports": reports})
        if args.write_baseline:
            payload = {
                "fixtures": [str(f) for f in fixtures],
                "metrics": metrics,
            }
            baseline_path.write_text(json.dumps(payload, indent=2))
            print(f"Wrote baseline: {baseline_path}")
            return 0
        if baseline_path.exists():
            baseline = json.loads(baseline_path.read_text())
            check_baseline_gate(baseline, metrics, args.rel_tol, args.abs_tol)
        else:
            print(f"Baseline not found, skipping baseline gate: {baseline_path}", file=sys.stderr)
    except ParityError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    print("Layer parity gates passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
