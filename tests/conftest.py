"""
Test configuration and fixtures for pytest.

In-memory engines stand in for the trace and reference processes so the
whole pipeline runs without spawning anything.
"""
import json

import pytest

from engine_runner import ReferenceEngine, TraceEngine
from parity_fixtures import KERNELS


def trace_text(nodes, edges, records=()):
    """Render a tab-separated trace from node ids, edges and extra records."""
    lines = [f"INPUT_NODE\t{i}\t{node_id}" for i, node_id in enumerate(nodes)]
    lines += [f"INPUT_EDGE\t{source}\t{target}" for source, target in edges]
    lines += ["\t".join(str(part) for part in record) for record in records]
    return "\n".join(lines) + "\n"


def layer_records(tag, layers):
    return [(tag, rank, ",".join(layer)) for rank, layer in enumerate(layers)]


def rows_for_layers(layers, spacing=100.0, axis="x"):
    """Reference rows placing layer k at major coordinate k * spacing."""
    rows = []
    for rank, layer in enumerate(layers):
        for slot, node_id in enumerate(layer):
            major = rank * spacing
            minor = slot * 40.0
            x, y = (major, minor) if axis == "x" else (minor, major)
            rows.append({"id": node_id, "x": x, "y": y})
    return rows


class FakeTraceEngine(TraceEngine):
    def __init__(self, traces=None, kernels=None):
        self.traces = traces or {}
        self.kernels = kernels or {}
        self.calls = []

    def trace(self, source, trial_count=None):
        self.calls.append((source, trial_count))
        return self.traces[source]

    def kernel_trace(self, case):
        self.calls.append((case, None))
        return self.kernels[case]


class FakeReferenceEngine(ReferenceEngine):
    """Answers layout requests keyed by (profile, node ids) or by node ids alone."""

    def __init__(self, responses=None, default=None):
        self.responses = responses or {}
        self.default = default
        self.requests = []

    def layout(self, request):
        self.requests.append(request)
        ids = tuple(request["inputNodeIds"])
        payload = self.responses.get((request.get("profile"), ids))
        if payload is None:
            payload = self.responses.get(ids, self.default)
        return payload if isinstance(payload, str) else json.dumps(payload)


DIAMOND_NODES = ("A", "B", "C", "D")
DIAMOND_EDGES = (("A", "B"), ("A", "C"), ("B", "D"), ("C", "D"))
DIAMOND_LAYERS = [["A"], ["B", "C"], ["D"]]


@pytest.fixture
def diamond_layers():
    return [list(layer) for layer in DIAMOND_LAYERS]


@pytest.fixture
def diamond_fixture(tmp_path):
    """A left-to-right diamond flowchart written to disk."""
    path = tmp_path / "layout_stress_900_diamond.mmd"
    path.write_text("flowchart LR\n  A --> B\n  A --> C\n  B --> D\n  C --> D\n")
    return path


@pytest.fixture
def diamond_trace():
    records = []
    records += layer_records("ORDER_LAYER_OPTIMIZED_SEED", DIAMOND_LAYERS)
    records += layer_records("ORDER_LAYER_OPTIMIZED_REVERSED_SEED", [["A"], ["C", "B"], ["D"]])
    records += layer_records("ORDER_LAYER_VIRTUAL_CANDIDATE", [["A"], ["C", "B"], ["D"]])
    records += layer_records("ORDER_LAYER_SELECTED", DIAMOND_LAYERS)
    records += layer_records("SEED_LAYER", DIAMOND_LAYERS)
    records += [("SEED_EDGE", source, target) for source, target in DIAMOND_EDGES]
    records += [
        ("SEED", "native-feedback"),
        ("ORDER_SELECTED_SOURCE", "seed"),
        ("ORDER_TRIAL_SELECTED", "seed", 0),
        ("ORDER_TRIAL_PASS", "seed", 0, 0, "forward", 1, 2, 2),
        ("ORDER_TRIAL_PASS", "seed", 0, 1, "backward", 0, 0, 0),
        ("ORDER_TRIAL_PASS", "seed", 0, 2, "forward", 1, 1, 1),
    ]
    records += [
        ("ORDER_TRIAL_LAYER", "seed", 0, 0) + record[1:]
        for record in layer_records("X", [["A"], ["C", "B"], ["D"]])
    ]
    records += [
        ("ORDER_TRIAL_LAYER", "seed", 0, 1) + record[1:]
        for record in layer_records("X", DIAMOND_LAYERS)
    ]
    records += [
        ("ORDER_TRIAL_LAYER", "seed", 0, 2) + record[1:]
        for record in layer_records("X", [["A"], ["C", "B"], ["D"]])
    ]
    records += [
        ("PLACEMENT_MAJOR_STRATEGY", "network-simplex"),
        ("PLACEMENT_MAJOR", "A", 0),
        ("PLACEMENT_MAJOR", "B", 120),
        ("PLACEMENT_MAJOR", "C", 120),
        ("PLACEMENT_MAJOR", "D", 240),
        ("PLACEMENT_MINOR", "A", 0),
        ("PLACEMENT_MINOR", "B", 0),
        ("PLACEMENT_MINOR", "C", 40),
        ("PLACEMENT_MINOR", "D", 0),
    ]
    return trace_text(DIAMOND_NODES, DIAMOND_EDGES, records)


@pytest.fixture
def diamond_engines(diamond_fixture, diamond_trace):
    trace_engine = FakeTraceEngine({diamond_fixture.read_text(): diamond_trace})
    reference_engine = FakeReferenceEngine(default=rows_for_layers(DIAMOND_LAYERS))
    return trace_engine, reference_engine


KERNEL_LAYERS = {
    "fanout": [["A"], ["B", "C", "D"], ["E"], ["F"]],
    "feedback_mesh": [["S"], ["A", "B"], ["C"], ["D"], ["T"]],
    "long_span": [["N0"], ["N1", "N4"], ["N2", "N5"], ["N6"], ["N3"]],
}

# Reference layers under forced node model order.
FORCE_MODEL_ORDER_LAYERS = {
    "fanout": [["A"], ["B", "C"], ["D", "E"], ["F"]],
    "feedback_mesh": KERNEL_LAYERS["feedback_mesh"],
    "long_span": [["N0"], ["N4", "N1"], ["N2", "N5"], ["N6"], ["N3"]],
}


def kernel_trace(layers, strategy="native-feedback"):
    records = [("SEED", strategy)] + layer_records("RANK_LAYER", layers)
    return "\n".join("\t".join(str(part) for part in record) for record in records) + "\n"


@pytest.fixture
def kernel_traces():
    traces = {name: kernel_trace(layers) for name, layers in KERNEL_LAYERS.items()}
    # long_span follows the forced model order, one rank off the default layout
    traces["long_span"] = kernel_trace(FORCE_MODEL_ORDER_LAYERS["long_span"])
    return traces


@pytest.fixture
def gate_engines(diamond_fixture, diamond_trace, kernel_traces):
    trace_engine = FakeTraceEngine({diamond_fixture.read_text(): diamond_trace}, kernel_traces)
    responses = {
        KERNELS[name][1].node_ids: rows_for_layers(layers)
        for name, layers in KERNEL_LAYERS.items()
    }
    responses.update({
        ("kernel-force-model-order", KERNELS[name][1].node_ids): rows_for_layers(layers)
        for name, layers in FORCE_MODEL_ORDER_LAYERS.items()
    })
    reference_engine = FakeReferenceEngine(responses, default=rows_for_layers(DIAMOND_LAYERS))
    return trace_engine, reference_engine
