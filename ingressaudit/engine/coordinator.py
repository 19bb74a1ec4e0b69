import functools
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, TextIO, Tuple
from .context import AuditContext
from .fixes import FixExecutor
from .pipeline import build_pipeline, run_pipeline
from ..config import AuditSettings
from ..probes.base import Probe
from ..reporting import json as json_report
from ..reporting import text as text_report
from ..utils import kube
from ..utils.term import BLUE, BOLD, CYAN, GREEN, RED, RESET, YELLOW

logger = logging.getLogger(__name__)

STAMP_FORMAT = "%Y%m%d-%H%M%S"


def report_paths(output_dir: Path, stamp: str, namespace: Optional[str] = None) -> Tuple[Path, Path]:
    base = f"ingress-audit-{namespace}-{stamp}" if namespace else f"ingress-audit-{stamp}"
    return output_dir / f"{base}.txt", output_dir / f"{base}.json"


def write_reports(ctx: AuditContext, json_text: str) -> None:
    for path, body in ((ctx.json_report_file, json_text), (ctx.text_report_file, text_report.emit(ctx))):
        if path is None:
            continue
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(body, encoding="utf-8")
        except OSError as e:
            logger.error("cannot write report %s: %s", path, e)
            continue
        logger.debug("wrote %s", path)


def run_audit(ctx: AuditContext, probes: Sequence[Probe], executor: Optional[FixExecutor] = None) -> AuditContext:
    """Audit one target: probes, reports, then the fix offer."""
    run_pipeline(ctx, probes)
    json_text = json_report.emit(ctx)
    text_report.write_summary(ctx)
    write_reports(ctx, json_text)
    if executor is not None:
        executor.offer(ctx)
    return ctx


class ScanCoordinator:
    def __init__(self, clients: Dict[str, Any], settings: AuditSettings,
                 executor: Optional[FixExecutor] = None,
                 probes: Optional[Callable[[], Sequence[Probe]]] = None,
                 exists: Optional[Callable[[str], bool]] = None,
                 stream: Optional[TextIO] = None,
                 now: Callable[[], datetime] = datetime.now):
        self.clients = clients
        self.settings = settings
        self.executor = executor
        self.probes = probes or (lambda: build_pipeline(clients, settings.required_tools))
        self.exists = exists or (lambda ns: kube.controller_exists(clients, settings.controller_name, ns))
        self.stream = stream
        self.now = now
        self.audited: List[AuditContext] = []

    @classmethod
    def from_settings(cls, clients: Dict[str, Any], settings: AuditSettings, **kw) -> "ScanCoordinator":
        executor = None
        if settings.offer_fixes:
            executor = FixExecutor(
                wait=functools.partial(kube.wait_for_rollout, clients),
                assume_yes=settings.assume_yes,
                rollout_timeout=settings.rollout_timeout,
            )
        return cls(clients, settings, executor=executor, **kw)

    def _print(self, s: str = "") -> None:
        out = self.stream if self.stream is not None else sys.stdout
        out.write(s + "\n")

    def new_context(self, namespace: str, stamp: str, multi: bool) -> AuditContext:
        s = self.settings
        text_file, json_file = report_paths(s.output_dir, stamp, namespace if multi else None)
        return AuditContext(
            namespace=namespace,
            domain=s.domain,
            email=s.email,
            controller_name=s.controller_name,
            text_report_file=text_file,
            json_report_file=json_file,
            report_ref=s.report_ref,
            stream=self.stream,
        )

    def run(self) -> int:
        """Audit every configured namespace; 0 when no target recorded a failure, 1 otherwise."""
        targets = self.settings.namespaces
        if not targets:
            raise ValueError("no namespaces to audit")
        multi = len(targets) > 1
        stamp = self.now().strftime(STAMP_FORMAT)
        total_failed = 0
        for i, ns in enumerate(targets, 1):
            if multi:
                self._print(f"\n{BOLD}{BLUE}--- NAMESPACE {i}/{len(targets)}: {ns} ---{RESET}")
                if not self.exists(ns):
                    self._print(f"  {YELLOW}SKIP{RESET}: No ingress-nginx in namespace {CYAN}{ns}{RESET}")
                    continue
            ctx = self.new_context(ns, stamp, multi)
            run_audit(ctx, self.probes(), self.executor)
            self.audited.append(ctx)
            total_failed += ctx.fail_count
        if multi:
            self._aggregate(targets, total_failed)
        return 1 if total_failed > 0 else 0

    def _aggregate(self, targets: Sequence[str], total_failed: int) -> None:
        self._print(f"\n{BOLD}{BLUE}=== MULTI-NAMESPACE SCAN COMPLETE ==={RESET}")
        self._print(f"  Namespaces scanned: {CYAN}{len(targets)}{RESET}")
        for ns in targets:
            self._print(f"  * {CYAN}{ns}{RESET}")
        if total_failed > 0:
            self._print(f"\n  {RED}{BOLD}✗ Total failures: {total_failed}{RESET}")
        else:
            self._print(f"\n  {GREEN}{BOLD}✓ All namespaces passed{RESET}")
