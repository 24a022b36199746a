"""Tests for the pipeline runner: ordering, gates, recovery, events, cancellation."""

import threading

import pytest

from agentpipe.agents.base import Artifacts, ExecutionResult
from agentpipe.errors import DefinitionError
from agentpipe.pipeline.runner import PipelineRunner
from tests.conftest import (
    RecordingSink,
    StubAgent,
    failed,
    make_pipeline,
    make_registry,
)


def _runner(*agents, **kwargs) -> PipelineRunner:
    return PipelineRunner(make_registry(*agents), **kwargs)


class TestBasicRun:
    def test_two_step_demo(self, tmp_path):
        agent = StubAgent(responses=["OK", "done"])
        pipeline = make_pipeline(
            [
                {"id": "a", "tool": "stub", "task": "say hi"},
                {"id": "b", "tool": "stub", "task": "summarize", "dependsOn": ["a"]},
            ],
            name="demo",
        )
        result = _runner(agent).run(pipeline, project_root=tmp_path)

        assert result.success
        assert result.error is None
        assert result.pipeline_name == "demo"
        assert [r.step_id for r in result.step_results] == ["a", "b"]
        assert "[a]:\nOK" in agent.requests[1].previous_output
        assert len(result.run_id) == 12
        assert result.total_duration_ms >= 0

    def test_end_to_end_demo_with_keyword_routing(self):
        agent = StubAgent()
        pipeline = make_pipeline(
            [
                {"id": "a", "task": "analyze X"},
                {"id": "b", "task": "implement based on ${a}", "dependsOn": ["a"]},
            ],
            name="demo",
        )
        result = _runner(agent).run(pipeline)

        assert result.success
        assert [r.step_id for r in result.step_results] == ["a", "b"]
        assert [r.task_type for r in agent.requests] == ["analyze", "code"]
        assert agent.requests[1].task == "implement based on "
        assert "[a]:\nOK" in agent.requests[1].previous_output

    def test_runs_in_dependency_order(self):
        agent = StubAgent()
        pipeline = make_pipeline(
            [
                {"id": "c", "task": "x", "dependsOn": ["b"]},
                {"id": "b", "task": "x", "dependsOn": ["a"]},
                {"id": "a", "task": "x"},
            ]
        )
        result = _runner(agent).run(pipeline)
        assert [r.step_id for r in result.step_results] == ["a", "b", "c"]
        assert [r.metadata["step_id"] for r in agent.requests] == ["a", "b", "c"]

    def test_cycle_raises_before_anything_runs(self):
        agent = StubAgent()
        sink = RecordingSink()
        pipeline = make_pipeline(
            [
                {"id": "a", "task": "x", "dependsOn": ["b"]},
                {"id": "b", "task": "x", "dependsOn": ["a"]},
            ]
        )
        with pytest.raises(DefinitionError, match="Circular dependency detected at step"):
            _runner(agent, events=sink).run(pipeline)
        assert agent.calls == 0
        assert sink.events == []

    def test_variables_override_pipeline_defaults(self):
        agent = StubAgent()
        pipeline = make_pipeline(
            [{"id": "a", "task": "${GREETING} ${WHO}"}],
            variables={"GREETING": "hi", "WHO": "there"},
        )
        _runner(agent).run(pipeline, variables={"WHO": "you"})
        assert agent.requests[0].task == "hi you"

    def test_pipeline_env_visible_to_conditions(self, monkeypatch):
        monkeypatch.delenv("STAGE", raising=False)
        agent = StubAgent()
        pipeline = make_pipeline(
            [
                {"id": "a", "task": "x", "condition": "env.STAGE == 'prod'"},
                {"id": "b", "task": "x", "condition": "env.STAGE == 'dev'"},
            ],
            env={"STAGE": "prod"},
        )
        result = _runner(agent).run(pipeline)
        assert not result.step_results[0].skipped
        assert result.step_results[1].skipped

    def test_step_outputs_available_to_later_steps(self):
        agent = StubAgent(responses=["lint clean", "x"])
        pipeline = make_pipeline(
            [
                {"id": "lint", "task": "x"},
                {"id": "report", "task": "Lint said: ${steps.lint.output}"},
            ]
        )
        _runner(agent).run(pipeline)
        assert agent.requests[1].task == "Lint said: lint clean"

    def test_reruns_make_identical_decisions(self, monkeypatch):
        monkeypatch.delenv("E2E_ENABLED", raising=False)
        pipeline = make_pipeline(
            [
                {"id": "a", "task": "x"},
                {"id": "b", "task": "x", "condition": "env.E2E_ENABLED == 'true'"},
                {"id": "c", "task": "x", "dependsOn": ["a"]},
            ]
        )
        runner = _runner(StubAgent())
        first = runner.run(pipeline)
        second = runner.run(pipeline)

        def decisions(result):
            return [(r.step_id, r.success, r.skipped, r.skip_reason) for r in result.step_results]

        assert decisions(first) == decisions(second)
        assert first.run_id != second.run_id


class TestConditionsAndDependencies:
    def test_condition_skip_does_not_call_agent(self, monkeypatch):
        monkeypatch.delenv("E2E_ENABLED", raising=False)
        agent = StubAgent()
        pipeline = make_pipeline(
            [{"id": "e2e", "task": "x", "condition": 'env.E2E_ENABLED == "true"'}]
        )
        result = _runner(agent).run(pipeline)
        assert result.success
        assert result.step_results[0].skipped
        assert agent.calls == 0

    def test_skipped_dependency_counts_as_satisfied(self):
        agent = StubAgent()
        pipeline = make_pipeline(
            [
                {"id": "a", "task": "x", "condition": "never"},
                {"id": "b", "task": "x", "dependsOn": ["a"]},
            ]
        )
        result = _runner(agent).run(pipeline)
        assert result.success
        assert not result.step_results[1].skipped
        assert agent.calls == 1

    def test_condition_checked_before_gate(self):
        approve_calls = []
        pipeline = make_pipeline(
            [{"id": "a", "task": "x", "condition": "never", "gate": {"enabled": True}}]
        )
        result = _runner(StubAgent(), approve=approve_calls.append).run(pipeline)
        assert result.success
        assert approve_calls == []


class TestGates:
    def _pipeline(self):
        return make_pipeline(
            [
                {"id": "a", "task": "x"},
                {"id": "b", "name": "Ship it", "task": "x", "gate": {"message": "Ship?"}},
                {"id": "c", "task": "x"},
            ]
        )

    def test_denied_gate_halts(self):
        agent = StubAgent()
        sink = RecordingSink()
        result = _runner(agent, approve=lambda step: False, events=sink).run(self._pipeline())
        assert not result.success
        assert result.error == "Pipeline stopped at gate: Ship it"
        assert [r.step_id for r in result.step_results] == ["a"]
        assert agent.calls == 1
        assert ("gate_wait", "b") in sink.events
        assert ("step_start", "b") not in sink.events
        assert sink.events[-1] == ("pipeline_complete", False)

    def test_no_approver_denies(self):
        result = _runner(StubAgent()).run(self._pipeline())
        assert result.error == "Pipeline stopped at gate: Ship it"

    def test_approved_gate_continues(self):
        seen = []

        def approve(step):
            seen.append((step.id, step.gate.message))
            return True

        result = _runner(StubAgent(), approve=approve).run(self._pipeline())
        assert result.success
        assert seen == [("b", "Ship?")]
        assert len(result.step_results) == 3

    def test_gate_wait_precedes_step_start(self):
        sink = RecordingSink()
        _runner(StubAgent(), approve=lambda step: True, events=sink).run(self._pipeline())
        names = [e for e in sink.events if e[1] == "b"]
        assert names == [("gate_wait", "b"), ("step_start", "b"), ("step_complete", "b")]

    def test_approver_exception_denies(self):
        def approve(step):
            raise RuntimeError("tty closed")

        result = _runner(StubAgent(), approve=approve).run(self._pipeline())
        assert result.error == "Pipeline stopped at gate: Ship it"


class TestFailures:
    def test_failure_without_handler_halts(self):
        agent = StubAgent(responses=[failed("boom")])
        pipeline = make_pipeline([{"id": "a", "task": "x"}, {"id": "b", "task": "x"}])
        result = _runner(agent).run(pipeline)
        assert not result.success
        assert result.error == "Step a failed: boom"
        assert [r.step_id for r in result.step_results] == ["a"]

    def test_routing_failure_halts(self):
        pipeline = make_pipeline([{"id": "a", "tool": "ghost", "task": "x"}])
        result = _runner(StubAgent()).run(pipeline)
        assert result.error == "Step a failed: Tool not found: ghost"

    def test_on_failure_runs_recovery_and_continues(self):
        agent = StubAgent(responses=[failed("broken"), "recovered", "independent"])
        pipeline = make_pipeline(
            [
                {"id": "a", "task": "x", "onFailure": "fix"},
                {"id": "b", "task": "x", "dependsOn": ["a"]},
                {"id": "c", "task": "x"},
                {"id": "fix", "task": "repair", "retry": {"maxAttempts": 3}},
            ]
        )
        result = _runner(agent).run(pipeline)

        assert not result.success
        assert result.error == "Step a failed: broken (handled by fix)"
        ids = [r.step_id for r in result.step_results]
        assert ids == ["a", "fix", "b", "c", "fix"]

        recovery = result.step_results[1]
        assert recovery.success and recovery.recovery_for == "a" and recovery.attempts == 1
        assert result.get("fix").recovery_for is None

        b = result.get("b")
        assert b.skipped and not b.success
        assert b.skip_reason == "Dependency 'a' failed"
        assert result.get("c").success

    def test_handler_also_runs_in_normal_order(self):
        agent = StubAgent()
        pipeline = make_pipeline(
            [
                {"id": "a", "task": "x", "onFailure": "fix"},
                {"id": "fix", "task": "repair"},
            ]
        )
        result = _runner(agent).run(pipeline)
        assert result.success
        assert result.error is None
        assert [r.step_id for r in result.step_results] == ["a", "fix"]
        assert result.get("fix").recovery_for is None

    def test_dependent_of_handler_waits_for_it(self):
        agent = StubAgent(responses=["built", "notified", "shipped"])
        pipeline = make_pipeline(
            [
                {"id": "build", "task": "x", "onFailure": "notify"},
                {"id": "ship", "task": "x", "dependsOn": ["notify"]},
                {"id": "notify", "task": "x"},
            ]
        )
        result = _runner(agent).run(pipeline)
        assert [r.step_id for r in result.step_results] == ["build", "notify", "ship"]
        assert agent.requests[2].previous_output == "[notify]:\nnotified"

    def test_recovery_failure_does_not_halt(self):
        agent = StubAgent(responses=[failed("a broke"), failed("fix broke"), "c ok"])
        pipeline = make_pipeline(
            [
                {"id": "a", "task": "x", "onFailure": "fix"},
                {"id": "c", "task": "x"},
                {"id": "fix", "task": "repair"},
            ]
        )
        result = _runner(agent).run(pipeline)
        assert not result.success
        assert result.error == "Step a failed: a broke (handled by fix)"
        assert [r.step_id for r in result.step_results] == ["a", "fix", "c", "fix"]

    def test_skipped_dependent_propagates(self):
        agent = StubAgent(responses=[failed(), "fixed", "never"])
        pipeline = make_pipeline(
            [
                {"id": "a", "task": "x", "onFailure": "fix"},
                {"id": "b", "task": "x", "dependsOn": ["a"]},
                {"id": "c", "task": "x", "dependsOn": ["b"]},
                {"id": "fix", "task": "x"},
            ]
        )
        result = _runner(agent).run(pipeline)
        assert result.get("c").skip_reason == "Dependency 'b' failed"
        assert agent.calls == 3


class TestArtifacts:
    def test_aggregated_in_order_including_recovery(self):
        agent = StubAgent(
            responses=[
                ExecutionResult(
                    success=True, output="1", artifacts=Artifacts(files=["one.py"], code=["x=1"])
                ),
                ExecutionResult(
                    success=False, error="bad", artifacts=Artifacts(files=["partial.py"])
                ),
                ExecutionResult(success=True, output="r", artifacts=Artifacts(files=["fix.py"])),
                "plain",
            ]
        )
        pipeline = make_pipeline(
            [
                {"id": "a", "task": "x"},
                {"id": "b", "task": "x", "onFailure": "fix"},
                {"id": "fix", "task": "x"},
            ]
        )
        result = _runner(agent).run(pipeline)
        assert result.artifacts.files == ["one.py", "fix.py"]
        assert result.artifacts.code == ["x=1"]


class TestEvents:
    def test_event_order(self):
        sink = RecordingSink()
        agent = StubAgent(chunks=["hi"])
        pipeline = make_pipeline([{"id": "a", "task": "x"}, {"id": "b", "task": "x"}])
        _runner(agent, events=sink).run(pipeline)
        assert sink.events == [
            ("pipeline_start", "test-pipeline"),
            ("step_start", "a"),
            ("step_output", ("a", "hi")),
            ("step_complete", "a"),
            ("step_start", "b"),
            ("step_output", ("b", "hi")),
            ("step_complete", "b"),
            ("pipeline_complete", True),
        ]

    def test_complete_fires_on_failure(self):
        sink = RecordingSink()
        pipeline = make_pipeline([{"id": "a", "task": "x"}])
        _runner(StubAgent(responses=[failed()]), events=sink).run(pipeline)
        assert sink.names()[-1] == "pipeline_complete"
        assert sink.events[-1] == ("pipeline_complete", False)


class TestCancel:
    def test_cancel_mid_step(self):
        slow = StubAgent(delay=5.0)
        sink = RecordingSink()
        runner = _runner(slow, events=sink)
        runner.executor.stop_grace_seconds = 1.0
        pipeline = make_pipeline([{"id": "a", "task": "x"}, {"id": "b", "task": "x"}])

        timer = threading.Timer(0.2, runner.cancel)
        timer.start()
        try:
            result = runner.run(pipeline)
        finally:
            timer.cancel()

        assert not result.success
        assert result.error == "Pipeline cancelled"
        assert [r.step_id for r in result.step_results] == ["a"]
        assert slow.calls == 1
        assert slow.stopped.is_set()
        assert sink.events[-1] == ("pipeline_complete", False)

    def test_cancel_without_active_run_is_noop(self):
        runner = _runner(StubAgent())
        runner.cancel()
        result = runner.run(make_pipeline([{"id": "a", "task": "x"}]))
        assert result.success


class TestPlan:
    def test_plan_resolves_agents_without_running(self):
        agent = StubAgent()
        pipeline = make_pipeline(
            [
                {"id": "b", "task": "x", "dependsOn": ["a"]},
                {"id": "a", "task": "review it", "onFailure": "fix"},
                {"id": "fix", "task": "x"},
                {"id": "odd", "tool": "ghost", "task": "x"},
            ]
        )
        planned = _runner(agent).plan(pipeline)
        assert [p.step.id for p in planned] == ["a", "b", "fix", "odd"]
        assert planned[0].agent == "stub" and planned[0].task_type == "analyze"
        assert planned[2].recovery
        assert planned[3].agent is None
        assert planned[3].error == "Tool not found: ghost"
        assert agent.calls == 0
