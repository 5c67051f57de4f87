#!/usr/bin/env python3
"""Parse tab-separated layering traces emitted by the candidate engine."""

from __future__ import annotations

import re
from dataclasses import dataclass

from parity_errors import ParseError, ShapeError

CANDIDATE_TAGS = {
    "seed": "ORDER_LAYER_OPTIMIZED_SEED",
    "reversed": "ORDER_LAYER_OPTIMIZED_REVERSED_SEED",
    "virtual": "ORDER_LAYER_VIRTUAL_CANDIDATE",
    "selected": "ORDER_LAYER_SELECTED",
}

DIRECTION_RE = re.compile(r"^(?:flowchart|graph)\s+([A-Za-z]{2})\b", re.IGNORECASE)
DIRECTIONS = {"LR", "RL", "TB", "TD", "BT"}
ELK_DIRECTIONS = {
    "LR": "RIGHT",
    "RL": "LEFT",
    "TB": "DOWN",
    "TD": "DOWN",
    "BT": "UP",
}


@dataclass(frozen=True)
class InputGraph:
    node_ids: tuple
    edges: tuple

    def request_edges(self):
        return [{"source": source, "target": target} for source, target in self.edges]


@dataclass(frozen=True)
class PassRow:
    pass_index: int
    direction: str
    changed: bool
    layered_crossings: int
    global_crossings: int
    layers: list


@dataclass(frozen=True)
class SelectedTrialTrace:
    graph: InputGraph
    selected_source: str
    selected_trial: int
    passes: tuple


@dataclass(frozen=True)
class PlacementTrace:
    graph: InputGraph
    strategy: str
    major: dict
    minor: dict


@dataclass(frozen=True)
class OrientationTrace:
    graph: InputGraph
    oriented: frozenset
    model_order: frozenset


def split_records(text: str):
    records = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        records.append(line.split("\t"))
    return records


def field(parts, index):
    return parts[index] if index < len(parts) else ""


def parse_int(value: str, fixture: str, what: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ShapeError(f"{fixture}: invalid {what} value: {value!r}") from None


def parse_rank(value: str, fixture: str, what: str) -> int:
    rank = parse_int(value, fixture, what)
    if rank < 0:
        raise ShapeError(f"{fixture}: negative {what} value: {value!r}")
    return rank


def split_ids(value: str):
    return value.split(",") if value else []


def parse_input_graph(records, fixture: str) -> InputGraph:
    by_index = {}
    edges = []
    for parts in records:
        kind = parts[0]
        if kind == "INPUT_NODE":
            index = parse_int(field(parts, 1), fixture, "INPUT_NODE index")
            node_id = field(parts, 2)
            if not node_id:
                raise ShapeError(f"{fixture}: INPUT_NODE {index} has no node id")
            if index in by_index and by_index[index] != node_id:
                raise ShapeError(
                    f"{fixture}: INPUT_NODE index {index} declared twice "
                    f"({by_index[index]} and {node_id})"
                )
            by_index[index] = node_id
        elif kind == "INPUT_EDGE":
            source = field(parts, 1)
            target = field(parts, 2)
            if not source or not target:
                raise ShapeError(f"{fixture}: malformed INPUT_EDGE: {parts!r}")
            edges.append((source, target))
    if not by_index:
        raise ParseError(fixture, "INPUT_NODE")
    if not edges:
        raise ParseError(fixture, "INPUT_EDGE")
    node_ids = tuple(node_id for _, node_id in sorted(by_index.items()))
    return InputGraph(node_ids=node_ids, edges=tuple(edges))


def layers_from_rank_map(by_rank):
    # Missing and empty ranks are dropped rather than padded.
    if not by_rank:
        return []
    layers = []
    for rank in range(max(by_rank) + 1):
        layer = by_rank.get(rank) or []
        if layer:
            layers.append(list(layer))
    return layers


def parse_rank_layers(records, tag: str, fixture: str, required=True):
    by_rank = {}
    for parts in records:
        if parts[0] != tag:
            continue
        rank = parse_rank(field(parts, 1), fixture, f"{tag} rank")
        by_rank[rank] = split_ids(field(parts, 2))
    if not by_rank and required:
        raise ParseError(fixture, tag)
    return layers_from_rank_map(by_rank)


def parse_candidate_trace(text: str, fixture: str, tags=None):
    """Return the input graph plus one layering per requested candidate name."""
    tags = CANDIDATE_TAGS if tags is None else tags
    records = split_records(text)
    graph = parse_input_graph(records, fixture)
    layers = {
        name: parse_rank_layers(records, tag, fixture) for name, tag in tags.items()
    }
    return graph, layers


def parse_seed_strategy(records) -> str:
    for parts in records:
        if parts[0] == "SEED":
            return field(parts, 1)
    return ""


def index_trial_layers(records, fixture: str):
    # (source, trial) -> pass -> rank -> ids, built in a single scan.
    index = {}
    for parts in records:
        if parts[0] != "ORDER_TRIAL_LAYER":
            continue
        source = field(parts, 1)
        trial = parse_int(field(parts, 2), fixture, "ORDER_TRIAL_LAYER trial")
        pass_index = parse_int(field(parts, 3), fixture, "ORDER_TRIAL_LAYER pass")
        rank = parse_rank(field(parts, 4), fixture, "ORDER_TRIAL_LAYER rank")
        by_pass = index.setdefault((source, trial), {})
        by_pass.setdefault(pass_index, {})[rank] = split_ids(field(parts, 5))
    return index


def parse_pass_record(parts, fixture: str):
    source = field(parts, 1)
    if not source:
        raise ShapeError(f"{fixture}: ORDER_TRIAL_PASS without source: {parts!r}")
    direction = field(parts, 4)
    if direction not in ("forward", "backward"):
        raise ShapeError(f"{fixture}: invalid ORDER_TRIAL_PASS direction: {direction!r}")
    changed = field(parts, 5)
    if changed not in ("0", "1"):
        raise ShapeError(f"{fixture}: invalid ORDER_TRIAL_PASS changed flag: {changed!r}")
    return {
        "source": source,
        "trial": parse_int(field(parts, 2), fixture, "ORDER_TRIAL_PASS trial"),
        "pass_index": parse_int(field(parts, 3), fixture, "ORDER_TRIAL_PASS pass"),
        "direction": direction,
        "changed": changed == "1",
        "layered_crossings": parse_int(
            field(parts, 6), fixture, "ORDER_TRIAL_PASS layered crossings"
        ),
        "global_crossings": parse_int(
            field(parts, 7), fixture, "ORDER_TRIAL_PASS global crossings"
        ),
    }


def parse_selected_trial(text: str, fixture: str) -> SelectedTrialTrace:
    records = split_records(text)
    graph = parse_input_graph(records, fixture)
    selected_source = ""
    selected_trials = {}
    pass_rows = []
    for parts in records:
        kind = parts[0]
        if kind == "ORDER_SELECTED_SOURCE":
            selected_source = field(parts, 1)
        elif kind == "ORDER_TRIAL_SELECTED":
            source = field(parts, 1)
            if not source:
                raise ShapeError(f"{fixture}: ORDER_TRIAL_SELECTED without source")
            selected_trials[source] = parse_int(
                field(parts, 2), fixture, "ORDER_TRIAL_SELECTED trial"
            )
        elif kind == "ORDER_TRIAL_PASS":
            pass_rows.append(parse_pass_record(parts, fixture))

    if not selected_source:
        raise ParseError(fixture, "ORDER_SELECTED_SOURCE")
    if selected_source not in selected_trials:
        raise ParseError(fixture, "ORDER_TRIAL_SELECTED", f"source={selected_source}")
    selected_trial = selected_trials[selected_source]

    layers_by_pass = index_trial_layers(records, fixture).get(
        (selected_source, selected_trial), {}
    )
    rows = sorted(
        (
            row
            for row in pass_rows
            if row["source"] == selected_source and row["trial"] == selected_trial
        ),
        key=lambda row: row["pass_index"],
    )
    if not rows:
        raise ParseError(
            fixture,
            "ORDER_TRIAL_PASS",
            f"source={selected_source} trial={selected_trial}",
        )
    passes = tuple(
        PassRow(
            pass_index=row["pass_index"],
            direction=row["direction"],
            changed=row["changed"],
            layered_crossings=row["layered_crossings"],
            global_crossings=row["global_crossings"],
            layers=layers_from_rank_map(layers_by_pass.get(row["pass_index"], {})),
        )
        for row in rows
    )
    return SelectedTrialTrace(
        graph=graph,
        selected_source=selected_source,
        selected_trial=selected_trial,
        passes=passes,
    )


def parse_placement_trace(text: str, fixture: str) -> PlacementTrace:
    records = split_records(text)
    graph = parse_input_graph(records, fixture)
    strategy = ""
    major = {}
    minor = {}
    for parts in records:
        kind = parts[0]
        if kind == "PLACEMENT_MAJOR_STRATEGY":
            strategy = field(parts, 1)
        elif kind in ("PLACEMENT_MAJOR", "PLACEMENT_MINOR"):
            node_id = field(parts, 1)
            if not node_id:
                raise ShapeError(f"{fixture}: {kind} without node id")
            value = parse_int(field(parts, 2), fixture, f"{kind} {node_id}")
            target = major if kind == "PLACEMENT_MAJOR" else minor
            target[node_id] = value
    if not major:
        raise ParseError(fixture, "PLACEMENT_MAJOR")
    if not minor:
        raise ParseError(fixture, "PLACEMENT_MINOR")
    if not strategy:
        raise ParseError(fixture, "PLACEMENT_MAJOR_STRATEGY")
    return PlacementTrace(graph=graph, strategy=strategy, major=major, minor=minor)


def parse_oriented_edges(records, tag: str, fixture: str):
    edges = set()
    for parts in records:
        if parts[0] != tag:
            continue
        source = field(parts, 1)
        target = field(parts, 2)
        if not source or not target:
            raise ShapeError(f"{fixture}: malformed {tag}: {parts!r}")
        edges.add((source, target))
    return edges


def parse_orientation_trace(text: str, fixture: str) -> OrientationTrace:
    """Cycle-breaking result: every input edge as the seed phase oriented it.

    Without FEEDBACK_EDGE_MODEL_ORDER records the model-order view falls back
    to the seed orientation.
    """
    records = split_records(text)
    graph = parse_input_graph(records, fixture)
    oriented = parse_oriented_edges(records, "SEED_EDGE", fixture)
    if not oriented:
        raise ParseError(fixture, "SEED_EDGE")
    model_order = parse_oriented_edges(records, "FEEDBACK_EDGE_MODEL_ORDER", fixture)
    return OrientationTrace(
        graph=graph,
        oriented=frozenset(oriented),
        model_order=frozenset(model_order or oriented),
    )


def parse_graph_direction(source: str) -> str:
    for raw in source.splitlines():
        line = raw.strip()
        if not line or line.startswith("%"):
            continue
        match = DIRECTION_RE.match(line)
        if not match:
            continue
        direction = match.group(1).upper()
        if direction in DIRECTIONS:
            return direction
    return "LR"


def major_axis(direction: str) -> str:
    return "x" if direction in ("LR", "RL") else "y"


def forward_sign(direction: str) -> int:
    return -1 if direction in ("RL", "BT") else 1


def elk_direction(direction: str) -> str:
    return ELK_DIRECTIONS.get(direction, "RIGHT")
