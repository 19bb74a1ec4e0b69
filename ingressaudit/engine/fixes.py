"""Deferred remediation.

Probes register fixes while they run; nothing touches the cluster until the
whole audit is done, the report is written and the operator has approved the
complete list with a single yes/no answer.
"""
import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, TextIO
from tabulate import tabulate
from .context import AuditContext
from ..config import ROLLOUT_TIMEOUT_SECONDS
from ..utils.findings import Fix, FixSeverity, WorkloadKind
from ..utils.term import BLUE, BOLD, CYAN, DIM, GREEN, RED, RESET, YELLOW

logger = logging.getLogger(__name__)

# Fixes that restart or recreate the controller pods, mapped to the workload
# kind to watch afterwards (None: whatever kind the audit discovered).
DISRUPTIVE_FIXES: Dict[str, Optional[WorkloadKind]] = {
    "snippet-annotations": None,
    "resource-limits": None,
    "upgrade-controller": WorkloadKind.DEPLOYMENT,
}

RolloutWaiter = Callable[[WorkloadKind, str, str, float], bool]


@dataclass
class FixResult:
    fix: Fix
    error: Optional[BaseException] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FixRun:
    confirmed: bool
    results: List[FixResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)


def is_confirmation(answer: str) -> bool:
    return answer.strip().lower() in ("y", "yes")


def _banner(title: str, color: str) -> str:
    bar = "═" * 10
    return f"\n{BOLD}{color}{bar} {title} {bar}{RESET}\n"


class FixExecutor:
    def __init__(self, wait: Optional[RolloutWaiter] = None, confirm: Callable[[str], str] = input,
                 assume_yes: bool = False, rollout_timeout: float = ROLLOUT_TIMEOUT_SECONDS,
                 stream: Optional[TextIO] = None, clock: Callable[[], float] = time.monotonic):
        self.wait = wait
        self.confirm = confirm
        self.assume_yes = assume_yes
        self.rollout_timeout = rollout_timeout
        self.stream = stream
        self.clock = clock

    def _print(self, s: str = "") -> None:
        out = self.stream if self.stream is not None else sys.stdout
        out.write(s + "\n")

    def offer(self, ctx: AuditContext) -> Optional[FixRun]:
        """Present, confirm and run the context's fixes. None when there is nothing to fix."""
        if not ctx.fixes:
            return None
        self.present(ctx)
        if not self._confirmed():
            self._print(f"\n  {YELLOW}Skipping auto-fix.{RESET} Fixes were logged in {ctx.text_report_file}")
            self._print("  You can apply them manually using the commands shown above.")
            return FixRun(confirmed=False)
        run = FixRun(confirmed=True, results=self.execute(ctx))
        self.summarize(run)
        return run

    def present(self, ctx: AuditContext) -> None:
        self._print(_banner("AUTO-FIX AVAILABLE", YELLOW))
        self._print(f"  The audit found {BOLD}{len(ctx.fixes)} fixable issue(s){RESET} "
                    f"for namespace {CYAN}{ctx.namespace}{RESET}:\n")
        rows = []
        for i, fix in enumerate(ctx.fixes, 1):
            color = RED if fix.severity is FixSeverity.CRITICAL else YELLOW
            rows.append([f"[{i:2d}]", f"{color}{fix.severity.value}{RESET}",
                         f"{fix.description}\n{DIM}$ {fix.command}{RESET}"])
        for line in tabulate(rows, headers=["#", "SEVERITY", "DESCRIPTION"], tablefmt="simple").splitlines():
            self._print("  " + line)
        self._print(f"\n  {YELLOW}{BOLD}⚠  These changes will be applied to your live cluster.{RESET}")
        self._print(f"  {YELLOW}   Review the commands above before continuing.{RESET}\n")

    def _confirmed(self) -> bool:
        if self.assume_yes:
            self._print(f"  {BOLD}Applying all fixes (--yes given).{RESET}")
            return True
        try:
            answer = self.confirm(f"  {BOLD}Do you want to apply all fixes? [yes/no]:{RESET} ")
        except EOFError:
            return False
        return is_confirmation(answer)

    def execute(self, ctx: AuditContext) -> List[FixResult]:
        self._print(_banner("APPLYING FIXES", BLUE))
        results: List[FixResult] = []
        total = len(ctx.fixes)
        for i, fix in enumerate(ctx.fixes, 1):
            self._print(f"\n  {BOLD}{CYAN}[{i}/{total}]{RESET} {BOLD}{fix.description}{RESET}")
            self._print(f"  {DIM}$ {fix.command}{RESET}\n")
            start = self.clock()
            try:
                fix.action()
            except Exception as e:
                elapsed = self.clock() - start
                logger.debug("fix %s failed", fix.id, exc_info=True)
                self._print(f"\n  {RED}{BOLD}✗ FAILED{RESET} ({elapsed:.3f}s): {e}")
                results.append(FixResult(fix=fix, error=e, elapsed=elapsed))
                continue
            elapsed = self.clock() - start
            self._print(f"\n  {GREEN}{BOLD}✓ DONE{RESET} ({elapsed:.3f}s)")
            results.append(FixResult(fix=fix, elapsed=elapsed))
            if fix.id in DISRUPTIVE_FIXES:
                self._await_rollout(ctx, DISRUPTIVE_FIXES[fix.id])
        return results

    def _await_rollout(self, ctx: AuditContext, kind: Optional[WorkloadKind]) -> None:
        if kind is None:
            kind = ctx.workload_kind
        if kind is WorkloadKind.UNKNOWN:
            kind = WorkloadKind.DEPLOYMENT
        if self.wait is None:
            return
        self._print(f"  {CYAN}→{RESET} Waiting for rollout of {kind.resource}/{ctx.controller_name} "
                    f"in {ctx.namespace} ...")
        settled = self.wait(kind, ctx.controller_name, ctx.namespace, self.rollout_timeout)
        if settled:
            self._print(f"  {GREEN}✓{RESET} Rollout complete")
        else:
            self._print(f"  {YELLOW}⚠{RESET} Rollout not confirmed within {self.rollout_timeout}s — continuing")

    def summarize(self, run: FixRun) -> None:
        self._print(_banner("FIX SUMMARY", BLUE))
        for r in run.results:
            if r.ok:
                self._print(f"  {GREEN}✓{RESET}  {r.fix.description}")
            else:
                self._print(f"  {RED}✗{RESET}  {r.fix.description}\n      {DIM}Error: {r.error}{RESET}")
        self._print()
        if run.failed == 0:
            self._print(f"  {GREEN}{BOLD}✓ All {run.succeeded} fix(es) applied successfully.{RESET}")
            self._print(f"  {DIM}Re-run the audit to confirm all issues are resolved.{RESET}\n")
        else:
            self._print(f"  {RED}{BOLD}✗ {run.failed} fix(es) failed, {run.succeeded} succeeded.{RESET}")
            self._print(f"  {YELLOW}Apply the failed fixes manually using the commands shown above.{RESET}\n")
