"""
Tests for the provisioning pipeline — ordering, failure policy, step log.
"""

import json
from pathlib import Path

from comfyprov.core.engine import adapter_step, run_pipeline
from comfyprov.core.models.action import Receipt
from comfyprov.core.models.step import Step, StepPolicy
from comfyprov.core.persistence.step_log import StepLog

FATAL = StepPolicy.FATAL
BEST_EFFORT = StepPolicy.BEST_EFFORT


class _Recorder:
    """Builds steps that record their execution order."""

    def __init__(self):
        self.executed: list[str] = []

    def step(self, name: str, outcome: str = "ok", policy: StepPolicy = FATAL) -> Step:
        def action() -> Receipt:
            self.executed.append(name)
            if outcome == "fail":
                return Receipt.failure(adapter="test", action_id=name, error=f"{name} broke")
            if outcome == "skip":
                return Receipt.skip(adapter="test", action_id=name, reason="nothing to do")
            if outcome == "raise":
                raise RuntimeError(f"{name} exploded")
            return Receipt.success(adapter="test", action_id=name, output=f"{name} done")

        return Step(name=name, action=action, policy=policy)


class TestRunPipeline:
    def test_all_succeed(self):
        rec = _Recorder()
        result = run_pipeline([rec.step("A"), rec.step("B"), rec.step("C")])
        assert result.completed
        assert result.failed_step is None
        assert rec.executed == ["A", "B", "C"]
        assert [r.step_name for r in result.log.entries] == ["A", "B", "C"]
        assert result.succeeded == 3

    def test_best_effort_failure_continues(self):
        rec = _Recorder()
        result = run_pipeline(
            [rec.step("A"), rec.step("B", "fail", BEST_EFFORT), rec.step("C")]
        )
        assert result.completed
        assert rec.executed == ["A", "B", "C"]
        assert [r.status for r in result.log.entries] == ["ok", "failed", "ok"]
        assert result.failed == 1

    def test_fatal_failure_aborts(self):
        rec = _Recorder()
        result = run_pipeline([rec.step("A"), rec.step("B", "fail"), rec.step("C")])
        assert result.aborted
        assert result.failed_step == "B"
        assert rec.executed == ["A", "B"]
        assert len(result.log) == 2

    def test_fatal_failure_first_step_executes_nothing_else(self):
        rec = _Recorder()
        steps = [rec.step("A", "fail")] + [rec.step(f"S{i}") for i in range(5)]
        result = run_pipeline(steps)
        assert result.aborted
        assert rec.executed == ["A"]

    def test_only_best_effort_failures_completes(self):
        rec = _Recorder()
        steps = [rec.step(f"S{i}", "fail", BEST_EFFORT) for i in range(4)]
        result = run_pipeline(steps)
        assert result.completed
        assert result.failed == 4
        assert rec.executed == ["S0", "S1", "S2", "S3"]

    def test_skip_counts_as_success(self):
        rec = _Recorder()
        result = run_pipeline([rec.step("clone", "skip"), rec.step("after")])
        assert result.completed
        assert result.log.get("clone").status == "skipped"

    def test_raising_action_is_captured(self):
        rec = _Recorder()
        result = run_pipeline([rec.step("A", "raise", BEST_EFFORT), rec.step("B")])
        assert result.completed
        entry = result.log.get("A")
        assert entry.failed
        assert "exploded" in entry.message

    def test_raising_fatal_action_aborts(self):
        rec = _Recorder()
        result = run_pipeline([rec.step("A", "raise"), rec.step("B")])
        assert result.aborted
        assert result.failed_step == "A"

    def test_non_receipt_return_is_failure(self):
        step = Step(name="bad", action=lambda: "not a receipt")
        result = run_pipeline([step])
        assert result.aborted
        assert "expected Receipt" in result.log.get("bad").message

    def test_empty_pipeline(self):
        result = run_pipeline([])
        assert result.completed
        assert result.total == 0

    def test_continues_existing_log(self):
        rec = _Recorder()
        log = StepLog()
        run_pipeline([rec.step("A")], log)
        result = run_pipeline([rec.step("B")], log)
        assert result.log is log
        assert [r.step_name for r in log.entries] == ["A", "B"]

    def test_policy_recorded(self):
        rec = _Recorder()
        result = run_pipeline([rec.step("A", policy=BEST_EFFORT)])
        assert result.log.get("A").policy is BEST_EFFORT

    def test_to_dict(self):
        rec = _Recorder()
        data = run_pipeline([rec.step("A"), rec.step("B", "fail")]).to_dict()
        assert data["status"] == "aborted"
        assert data["failed_step"] == "B"
        assert data["total"] == 2
        assert data["steps"][1]["status"] == "failed"
        json.dumps(data)

    def test_log_persisted_as_steps_run(self, tmp_path: Path):
        path = tmp_path / "steps.ndjson"
        seen: list[int] = []

        def second() -> Receipt:
            seen.append(len(path.read_text().splitlines()))
            return Receipt.success(adapter="t", action_id="second")

        steps = [
            Step(name="first", action=lambda: Receipt.success(adapter="t", action_id="first")),
            Step(name="second", action=second),
        ]
        run_pipeline(steps, StepLog(path))
        assert seen == [1]
        assert len(path.read_text().splitlines()) == 2


class TestAdapterStep:
    def test_dispatches_through_registry(self, mock_registry, mock_adapter):
        step = adapter_step(
            "apt-update", mock_registry, "apt", "update", policy=BEST_EFFORT, description="update"
        )
        assert step.policy is BEST_EFFORT
        assert step.action().ok
        assert mock_adapter.calls_for("update")

    def test_failure_policy_applied(self, mock_registry, mock_adapter):
        mock_adapter.set_failure("clone", error="network down")
        steps = [
            adapter_step("clone-plugin:x", mock_registry, "git", "clone", policy=BEST_EFFORT,
                         url="u", destination="d"),
            adapter_step("mkdir", mock_registry, "filesystem", "mkdir", path="p"),
        ]
        result = run_pipeline(steps)
        assert result.completed
        assert result.log.get("clone-plugin:x").message == "network down"
