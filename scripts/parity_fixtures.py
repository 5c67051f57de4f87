#!/usr/bin/env python3
"""Stress fixture corpus: the fixed list plus directory auto-discovery."""

from __future__ import annotations

import argparse
import json
import re
from pathlib import Path

from layering_trace import InputGraph

ROOT = Path(__file__).resolve().parents[1]
FIXTURE_DIR = ROOT / "fixtures"
STRESS_GLOB = "layout_stress_*.mmd"

STRESS_FIXTURES = [
    "fixtures/layout_stress_001_dense_dag.mmd",
    "fixtures/layout_stress_002_feedback_mesh.mmd",
    "fixtures/layout_stress_003_subgraph_bridges.mmd",
    "fixtures/layout_stress_004_fanin_fanout.mmd",
    "fixtures/layout_stress_005_long_span_backjumps.mmd",
    "fixtures/layout_stress_006_nested_bridge_loops.mmd",
    "fixtures/layout_stress_007_dependency_weave.mmd",
    "fixtures/layout_stress_008_hyper_weave_pipeline.mmd",
    "fixtures/layout_stress_009_nested_ring_bridges.mmd",
    "fixtures/layout_stress_010_bipartite_crossfire.mmd",
    "fixtures/layout_stress_011_feedback_lattice.mmd",
    "fixtures/layout_stress_012_interleaved_subgraph_feedback.mmd",
    "fixtures/layout_stress_013_rl_dual_scc_weave.mmd",
]

# Small graphs laid out by both engines for the rank-layer phase check.
KERNELS = {
    "fanout": (
        "LR",
        InputGraph(
            node_ids=("A", "B", "C", "D", "E", "F"),
            edges=(
                ("A", "B"),
                ("A", "C"),
                ("A", "D"),
                ("B", "E"),
                ("C", "E"),
                ("D", "F"),
                ("E", "F"),
            ),
        ),
    ),
    "feedback_mesh": (
        "LR",
        InputGraph(
            node_ids=("S", "A", "B", "C", "D", "T"),
            edges=(
                ("S", "A"),
                ("S", "B"),
                ("A", "C"),
                ("B", "C"),
                ("C", "D"),
                ("D", "T"),
                ("D", "B"),
                ("C", "A"),
            ),
        ),
    ),
    "long_span": (
        "LR",
        InputGraph(
            node_ids=("N0", "N1", "N2", "N3", "N4", "N5", "N6"),
            edges=(
                ("N0", "N1"),
                ("N1", "N2"),
                ("N2", "N3"),
                ("N3", "N4"),
                ("N4", "N5"),
                ("N5", "N6"),
                ("N0", "N4"),
                ("N1", "N5"),
                ("N2", "N6"),
                ("N6", "N3"),
            ),
        ),
    ),
}


def discover_fixtures(fixture_dir: Path = FIXTURE_DIR):
    files = sorted(fixture_dir.glob(STRESS_GLOB)) if fixture_dir.exists() else []
    if files:
        return files
    return [ROOT / rel for rel in STRESS_FIXTURES if (ROOT / rel).exists()]


def collect_fixtures(paths, fixture_dir: Path = FIXTURE_DIR, limit=0, patterns=()):
    """Explicit fixture paths win; otherwise fall back to corpus discovery."""
    files = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(sorted(path.glob("**/*.mmd")))
        else:
            files.append(path)
    if not files:
        files = discover_fixtures(fixture_dir)
    if patterns:
        rx = [re.compile(p) for p in patterns]
        files = [f for f in files if any(r.search(str(f)) for r in rx)]
    if limit:
        files = files[:limit]
    return files


def read_fixture(path: Path) -> str:
    return Path(path).read_text(encoding="utf-8")


def fixture_label(path: Path) -> str:
    try:
        return Path(path).resolve().relative_to(ROOT).as_posix()
    except ValueError:
        return str(path)


def positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        parsed = 0
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"invalid positive integer: {value}")
    return parsed


def add_fixture_arguments(parser):
    parser.add_argument(
        "fixtures",
        nargs="*",
        help="fixture files or dirs. default: auto-discover fixtures/layout_stress_*.mmd",
    )
    parser.add_argument(
        "--fixtures-dir",
        default=str(FIXTURE_DIR),
        help="directory scanned when no fixtures are given",
    )
    parser.add_argument("--limit", type=int, default=0, help="limit number of fixtures")
    parser.add_argument(
        "--pattern",
        action="append",
        default=[],
        help="regex pattern to filter fixture paths (repeatable)",
    )


def fixtures_from_args(args):
    return collect_fixtures(args.fixtures, Path(args.fixtures_dir), args.limit, args.pattern)


def write_json(path, report: dict):
    Path(path).write_text(json.dumps(report, indent=2))
