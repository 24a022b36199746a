"""Tests for the built-in pipelines."""

import pytest

from agentpipe.pipeline.builtin import (
    BUILTIN_PIPELINE_NAMES,
    get_builtin_pipeline,
    list_builtin_pipelines,
)
from agentpipe.pipeline.runner import PipelineRunner, order_steps
from tests.conftest import StubAgent, make_registry


class TestCatalog:
    def test_names(self):
        assert [p.name for p in list_builtin_pipelines()] == list(BUILTIN_PIPELINE_NAMES)

    @pytest.mark.parametrize("name", BUILTIN_PIPELINE_NAMES)
    def test_each_orders_without_cycles(self, name):
        pipeline = get_builtin_pipeline(name)
        assert pipeline is not None
        assert len(order_steps(pipeline.steps)) == len(pipeline.steps)

    @pytest.mark.parametrize("name", BUILTIN_PIPELINE_NAMES)
    def test_every_step_declares_a_task_type(self, name):
        for step in get_builtin_pipeline(name).steps:
            assert step.task_type, f"{name}:{step.id}"

    def test_unknown(self):
        assert get_builtin_pipeline("nope") is None

    def test_cached(self):
        assert get_builtin_pipeline("docs") is get_builtin_pipeline("docs")

    @pytest.mark.parametrize(
        ("name", "gated"),
        [
            ("feature", "review"),
            ("bugfix", "review-fix"),
            ("refactor", "refactor"),
            ("release", "version-bump"),
        ],
    )
    def test_gates(self, name, gated):
        pipeline = get_builtin_pipeline(name)
        assert [s.id for s in pipeline.steps if s.gate_enabled] == [gated]

    def test_testing_e2e_is_conditional(self):
        step = get_builtin_pipeline("testing").get_step("e2e-tests")
        assert step.condition == 'env.E2E_ENABLED == "true"'


class TestRunningBuiltins:
    def test_feature_end_to_end(self, tmp_path):
        agent = StubAgent(responses=["step output"])
        runner = PipelineRunner(make_registry(agent), approve=lambda step: True)
        result = runner.run(
            get_builtin_pipeline("feature"),
            project_root=tmp_path,
            variables={"FEATURE_DESCRIPTION": "dark mode"},
        )
        assert result.success
        assert len(result.step_results) == 8
        assert "dark mode" in agent.requests[0].task

    def test_testing_skips_e2e_by_default(self, monkeypatch):
        monkeypatch.delenv("E2E_ENABLED", raising=False)
        runner = PipelineRunner(make_registry(StubAgent()))
        result = runner.run(get_builtin_pipeline("testing"))
        assert result.success
        e2e = result.get("e2e-tests")
        assert e2e.skipped

    def test_testing_runs_e2e_when_enabled(self, monkeypatch):
        monkeypatch.setenv("E2E_ENABLED", "true")
        runner = PipelineRunner(make_registry(StubAgent()))
        result = runner.run(get_builtin_pipeline("testing"))
        assert not result.get("e2e-tests").skipped

    def test_review_summary_sees_earlier_outputs(self):
        agent = StubAgent(responses=["static", "security", "review", "summary"])
        runner = PipelineRunner(make_registry(agent))
        runner.run(get_builtin_pipeline("review"), variables={"FILES": "src/"})
        summary_task = agent.requests[-1].task
        assert "static" in summary_task
        assert "security" in summary_task
