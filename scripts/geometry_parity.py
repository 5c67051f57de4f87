#!/usr/bin/env python3
import argparse
import json
import math
import sys
from pathlib import Path

from layer_parity import layer_parity
from layering_trace import major_axis
from parity_errors import InsufficientDataError, ParityError
from reference_layers import bucket_layers

NORMALIZE_EPS = 1e-9
TOP_DRIFT = 6


def load_layout(path: Path):
    data = json.loads(path.read_text())
    positions = {}
    for node in data.get('nodes', []):
        if node.get('hidden'):
            continue
        if node.get('anchor_subgraph') is not None:
            continue
        cx = float(node['x']) + float(node.get('width', 0.0)) / 2.0
        cy = float(node['y']) + float(node.get('height', 0.0)) / 2.0
        positions[node['id']] = (cx, cy)
    return positions


def bounds_of(points):
    if not points:
        return 0.0, 0.0, 0.0, 0.0
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return min(xs), max(xs), min(ys), max(ys)


def normalize(point, bounds):
    min_x, max_x, min_y, max_y = bounds
    width = max(max_x - min_x, NORMALIZE_EPS)
    height = max(max_y - min_y, NORMALIZE_EPS)
    return (point[0] - min_x) / width, (point[1] - min_y) / height


def sort_by_axis(ids, positions, axis='x'):
    major = 0 if axis == 'x' else 1
    minor = 1 - major
    return sorted(ids, key=lambda i: (positions[i][major], positions[i][minor], i))


def count_pair_inversions(reference, actual):
    index = {node_id: i for i, node_id in enumerate(actual)}
    inversions = 0
    for i in range(len(reference)):
        left = index[reference[i]]
        for j in range(i + 1, len(reference)):
            if left > index[reference[j]]:
                inversions += 1
    return inversions


def pair_count(n):
    return n * (n - 1) // 2


def compute_diffs(reference, candidate, shared):
    ref_bounds = bounds_of([reference[i] for i in shared])
    cand_bounds = bounds_of([candidate[i] for i in shared])
    diffs = []
    for node_id in shared:
        rx, ry = normalize(reference[node_id], ref_bounds)
        cx, cy = normalize(candidate[node_id], cand_bounds)
        dx = cx - rx
        dy = cy - ry
        diffs.append({
            'id': node_id,
            'dx': dx,
            'dy': dy,
            'distance': math.hypot(dx, dy),
        })
    diffs.sort(key=lambda d: d['distance'], reverse=True)
    return diffs, ref_bounds, cand_bounds


def span_ratio(cand_bounds, ref_bounds):
    c_min_x, c_max_x, c_min_y, c_max_y = cand_bounds
    r_min_x, r_max_x, r_min_y, r_max_y = ref_bounds
    return {
        'x': (c_max_x - c_min_x) / max(r_max_x - r_min_x, NORMALIZE_EPS),
        'y': (c_max_y - c_min_y) / max(r_max_y - r_min_y, NORMALIZE_EPS),
    }


def geometry_parity(reference, candidate, axis='x', top=TOP_DRIFT):
    shared = sorted(node_id for node_id in reference if node_id in candidate)
    if len(shared) < 2:
        raise InsufficientDataError(
            f'not enough shared labeled nodes (shared={len(shared)})'
        )
    diffs, ref_bounds, cand_bounds = compute_diffs(reference, candidate, shared)
    sum_sq = sum(d['distance'] ** 2 for d in diffs)
    inversions = count_pair_inversions(
        sort_by_axis(shared, reference, axis),
        sort_by_axis(shared, candidate, axis),
    )
    pairs = pair_count(len(shared))
    return {
        'shared': len(shared),
        'rmse': math.sqrt(sum_sq / len(shared)),
        'max_distance': diffs[0]['distance'],
        'inversions': inversions,
        'pair_count': pairs,
        'inversion_rate': inversions / pairs,
        'span_ratio': span_ratio(cand_bounds, ref_bounds),
        'top_nodes': diffs[:top],
    }


def composition_mismatch_count(left, right):
    return layer_parity(left, right).composition_mismatch_layers


def placement_parity(trace, rows, direction):
    """Compare candidate PLACEMENT_MAJOR/MINOR against reference coordinates."""
    axis = major_axis(direction)
    reference = {}
    for node_id, x, y in rows:
        reference[node_id] = (x, y) if axis == 'x' else (y, x)
    candidate = {
        node_id: (trace.major[node_id], trace.minor.get(node_id, 0))
        for node_id in trace.major
    }
    shared = [
        node_id for node_id in trace.graph.node_ids
        if node_id in candidate and node_id in reference
    ]
    local_order = sort_by_axis(shared, candidate)
    upstream_order = sort_by_axis(shared, reference)
    pairs = pair_count(len(shared))
    inversions = count_pair_inversions(upstream_order, local_order)

    local_layers = bucket_layers([(i,) + candidate[i] for i in shared], 'x')
    upstream_layers = bucket_layers([(i,) + reference[i] for i in shared], 'x')
    return {
        'strategy': trace.strategy,
        'shared': len(shared),
        'candidate_layers': len(local_layers),
        'reference_layers': len(upstream_layers),
        'layer_mismatch': composition_mismatch_count(local_layers, upstream_layers),
        'inversions': inversions,
        'inversion_rate': inversions / pairs if pairs else 0.0,
    }


def format_geometry(name, result):
    lines = [
        f'=== {name} ===',
        f"shared_labeled_nodes={result['shared']}",
        f"normalized_rmse={result['rmse']:.4f} max={result['max_distance']:.4f}",
        f"inversion_rate={result['inversion_rate']:.4f} "
        f"({result['inversions']}/{result['pair_count']})",
        f"span_ratio x={result['span_ratio']['x']:.3f} y={result['span_ratio']['y']:.3f}",
        'top drift nodes (normalized):',
    ]
    for row in result['top_nodes']:
        lines.append(
            f"  {row['id']}: dist={row['distance']:.4f} "
            f"dx={row['dx']:.4f} dy={row['dy']:.4f}"
        )
    return lines


def main():
    parser = argparse.ArgumentParser(
        description='Compare node geometry of two layout dumps'
    )
    parser.add_argument('--candidate-layout', required=True)
    parser.add_argument('--reference-layout', required=True)
    parser.add_argument('--direction', default='LR', help='LR, RL, TB, TD or BT')
    parser.add_argument('--top', type=int, default=TOP_DRIFT)
    parser.add_argument('--output', required=False)
    args = parser.parse_args()

    candidate = load_layout(Path(args.candidate_layout))
    reference = load_layout(Path(args.reference_layout))
    try:
        result = geometry_parity(
            reference, candidate, major_axis(args.direction.upper()), args.top
        )
    except ParityError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    for line in format_geometry(args.candidate_layout, result):
        print(line)
    if args.output:
        Path(args.output).write_text(json.dumps(result, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
