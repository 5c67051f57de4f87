"""
Command assembly for the process-backed engines.
"""
import json
import shlex
import subprocess

import pytest

import engine_runner
from engine_runner import CommandReferenceEngine, CommandTraceEngine
from parity_errors import EngineError


class Recorder:
    def __init__(self, returncode=0, stdout="ok", stderr=""):
        self.result = subprocess.CompletedProcess([], returncode, stdout, stderr)
        self.commands = []

    def __call__(self, cmd):
        self.commands.append(cmd)
        return self.result


def test_trace_command_appends_source_and_trial_count(monkeypatch):
    recorder = Recorder(stdout="INPUT_NODE\t0\tA\n")
    monkeypatch.setattr(engine_runner, "run", recorder)

    engine = CommandTraceEngine("moon run cmd/elk_trace --target native --")
    out = engine.trace("flowchart LR\nA-->B", trial_count=3)

    assert out == "INPUT_NODE\t0\tA\n"
    assert recorder.commands[0] == [
        "moon", "run", "cmd/elk_trace", "--target", "native", "--",
        "--source", "flowchart LR\nA-->B", "--trial-count", "3",
    ]


def test_kernel_trace_uses_case_flag(monkeypatch):
    recorder = Recorder()
    monkeypatch.setattr(engine_runner, "run", recorder)

    CommandTraceEngine("tracer").kernel_trace("fanout")

    assert recorder.commands[0] == ["tracer", "--case", "fanout"]


def test_reference_request_is_last_argument(monkeypatch):
    recorder = Recorder(stdout="[]")
    monkeypatch.setattr(engine_runner, "run", recorder)
    request = {"inputNodeIds": ["A"], "inputEdges": [], "direction": "RIGHT"}

    CommandReferenceEngine("node 'my scripts/elk.js'").layout(request)

    cmd = recorder.commands[0]
    assert cmd[:2] == ["node", "my scripts/elk.js"]
    assert json.loads(cmd[-1]) == request


def test_failed_command_raises_with_output(monkeypatch):
    monkeypatch.setattr(engine_runner, "run", Recorder(returncode=1, stdout="partial", stderr="boom"))

    with pytest.raises(EngineError) as excinfo:
        CommandTraceEngine("tracer").kernel_trace("fanout")

    message = str(excinfo.value)
    assert "command failed: tracer --case fanout" in message
    assert "stderr:\nboom" in message
    assert "stdout:\npartial" in message


def test_base_engines_are_abstract():
    with pytest.raises(NotImplementedError):
        engine_runner.TraceEngine().trace("")
    with pytest.raises(NotImplementedError):
        engine_runner.ReferenceEngine().layout({})


def test_default_reference_script_ships_with_the_repo():
    script = engine_runner.DEFAULT_REFERENCE_SCRIPT

    assert script.exists()
    assert "layoutOptions" in script.read_text()
    assert shlex.split(f"node {shlex.quote(str(script))}")[1] == str(script)
