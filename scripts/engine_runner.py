#!/usr/bin/env python3
"""Blocking call-and-wait wrappers around the candidate and reference engines."""

from __future__ import annotations

import json
import os
import shlex
import subprocess
from pathlib import Path

from parity_errors import EngineError

ROOT = Path(__file__).resolve().parents[1]

DEFAULT_REFERENCE_SCRIPT = ROOT / "scripts" / "elk_reference.js"

TRACE_CMD = os.environ.get(
    "LAYER_PARITY_TRACE_CMD", "moon run cmd/elk_trace --target native --"
)
REFERENCE_CMD = os.environ.get(
    "LAYER_PARITY_REFERENCE_CMD", f"node {shlex.quote(str(DEFAULT_REFERENCE_SCRIPT))}"
)


def run(cmd):
    return subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)


def run_or_raise(cmd) -> str:
    res = run(cmd)
    if res.returncode != 0:
        parts = [f"command failed: {shlex.join(cmd)}"]
        stderr = res.stderr.strip()
        stdout = res.stdout.strip()
        if stderr:
            parts.append(f"stderr:\n{stderr}")
        if stdout:
            parts.append(f"stdout:\n{stdout}")
        raise EngineError("\n".join(parts))
    return res.stdout


class TraceEngine:
    """Produces structured traces for a fixture source or a named kernel."""

    def trace(self, source: str, trial_count=None) -> str:
        raise NotImplementedError

    def kernel_trace(self, case: str) -> str:
        raise NotImplementedError


class ReferenceEngine:
    """Lays out a request payload and returns the raw JSON response text."""

    def layout(self, request: dict) -> str:
        raise NotImplementedError


class CommandTraceEngine(TraceEngine):
    def __init__(self, cmd: str = TRACE_CMD):
        self.cmd = shlex.split(cmd)

    def trace(self, source: str, trial_count=None) -> str:
        args = self.cmd + ["--source", source]
        if trial_count is not None:
            args += ["--trial-count", str(trial_count)]
        return run_or_raise(args)

    def kernel_trace(self, case: str) -> str:
        return run_or_raise(self.cmd + ["--case", case])


class CommandReferenceEngine(ReferenceEngine):
    def __init__(self, cmd: str = REFERENCE_CMD):
        self.cmd = shlex.split(cmd)

    def layout(self, request: dict) -> str:
        return run_or_raise(self.cmd + [json.dumps(request)])
