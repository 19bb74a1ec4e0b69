import io
from unittest.mock import MagicMock
import pytest
from ingressaudit.engine import context as facts
from ingressaudit.engine.fixes import DISRUPTIVE_FIXES, FixExecutor, is_confirmation
from ingressaudit.utils.findings import FixSeverity, WorkloadKind


def _executor(answer="yes", wait=None, **kw):
    confirm = MagicMock(return_value=answer)
    ex = FixExecutor(wait=wait, confirm=confirm, stream=io.StringIO(), clock=lambda: 0.0, **kw)
    return ex, confirm


def _register(ctx, calls, *ids, failing=()):
    for fid in ids:
        def action(fid=fid):
            calls.append(fid)
            if fid in failing:
                raise RuntimeError(f"{fid} broke")
        ctx.register_fix(fid, FixSeverity.CRITICAL, f"apply {fid}", f"kubectl {fid}", action)


@pytest.mark.parametrize("answer,ok", [("y", True), ("YES", True), (" yes ", True),
                                       ("n", False), ("", False), ("sure", False)])
def test_confirmation_answers(answer, ok):
    assert is_confirmation(answer) is ok


def test_nothing_to_offer(ctx):
    ex, confirm = _executor()
    assert ex.offer(ctx) is None
    confirm.assert_not_called()


def test_declined_runs_nothing(ctx):
    calls = []
    _register(ctx, calls, "a", "b")
    before = (dict(ctx.counts), ctx.output.getvalue())
    ex, confirm = _executor("no")
    run = ex.offer(ctx)
    confirm.assert_called_once()
    assert not run.confirmed
    assert run.results == []
    assert calls == []
    assert (dict(ctx.counts), ctx.output.getvalue()) == before


def test_eof_on_prompt_declines(ctx):
    calls = []
    _register(ctx, calls, "a")
    ex = FixExecutor(confirm=MagicMock(side_effect=EOFError), stream=io.StringIO())
    assert not ex.offer(ctx).confirmed
    assert calls == []


def test_confirmed_runs_each_fix_once_in_order(ctx):
    calls = []
    _register(ctx, calls, "first", "second", "third")
    ex, _ = _executor("y")
    run = ex.offer(ctx)
    assert calls == ["first", "second", "third"]
    assert [r.fix.id for r in run.results] == ["first", "second", "third"]
    summary = ex.stream.getvalue().split("FIX SUMMARY", 1)[1]
    for fid in ("first", "second", "third"):
        assert summary.count(f"apply {fid}") == 1


def test_failure_does_not_stop_later_fixes(ctx):
    calls = []
    _register(ctx, calls, "a", "b", "c", failing=("b",))
    ex, _ = _executor("yes")
    run = ex.offer(ctx)
    assert calls == ["a", "b", "c"]
    assert (run.succeeded, run.failed) == (2, 1)
    assert isinstance(run.results[1].error, RuntimeError)
    assert "b broke" in ex.stream.getvalue()


def test_assume_yes_skips_prompt(ctx):
    calls = []
    _register(ctx, calls, "a")
    ex, confirm = _executor(assume_yes=True)
    ex.offer(ctx)
    confirm.assert_not_called()
    assert calls == ["a"]


def test_rollout_wait_only_after_disruptive_success(ctx):
    ctx.facts[facts.DEPLOYMENT_TYPE] = WorkloadKind.DAEMONSET
    calls = []
    _register(ctx, calls, "admission-loadbalancer", "resource-limits", "snippet-annotations",
              "upgrade-controller", failing=("snippet-annotations",))
    wait = MagicMock(return_value=True)
    ex, _ = _executor("yes", wait=wait, rollout_timeout=30)
    ex.offer(ctx)
    name, ns = ctx.controller_name, ctx.namespace
    assert [c.args for c in wait.call_args_list] == [
        (WorkloadKind.DAEMONSET, name, ns, 30),
        (WorkloadKind.DEPLOYMENT, name, ns, 30),
    ]


def test_unknown_kind_waits_on_deployment(ctx):
    calls = []
    _register(ctx, calls, "resource-limits")
    wait = MagicMock(return_value=False)
    ex, _ = _executor("yes", wait=wait)
    run = ex.offer(ctx)
    assert wait.call_args.args[0] is WorkloadKind.DEPLOYMENT
    # an unsettled rollout is not a fix failure
    assert run.failed == 0


def test_disruptive_ids():
    assert set(DISRUPTIVE_FIXES) == {"snippet-annotations", "resource-limits", "upgrade-controller"}
