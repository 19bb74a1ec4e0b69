import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from kubernetes.client import ApiException
from kubernetes.config.config_exception import ConfigException
from tabulate import tabulate
from urllib3.exceptions import HTTPError
from .config import DEFAULT_CONTROLLER_NAME, DEFAULT_DOMAIN, ROLLOUT_TIMEOUT_SECONDS, AuditSettings
from .engine.coordinator import ScanCoordinator
from .errors import AuditAborted
from .utils import kube
from .utils.term import BLUE, BOLD, CYAN, DIM, GREEN, RED, RESET, YELLOW

logger = logging.getLogger("ingressaudit")

Prompt = Callable[[str], str]


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="ingress-audit",
        description="ingress-audit - security & compliance audit for ingress-nginx controllers",
    )
    ap.add_argument("-n", "--namespace", action="append", dest="namespaces", metavar="NS",
                    help="Namespace to audit (repeatable)")
    ap.add_argument("--all-namespaces", action="store_true",
                    help="Audit every namespace that contains the controller")
    ap.add_argument("--domain", help="Domain the controller serves (used in report text)")
    ap.add_argument("--email", help="Admin contact shown in reports")
    ap.add_argument("--controller-name", help="Deployment/DaemonSet name of the controller")
    ap.add_argument("--kubeconfig", help="Path to kubeconfig (defaults to the standard lookup)")
    ap.add_argument("--context", help="kubeconfig context to use")
    ap.add_argument("--output-dir", type=Path, default=Path("."), help="Where report files are written")
    ap.add_argument("--yes", action="store_true", help="Apply offered fixes without asking")
    ap.add_argument("--no-fix", action="store_true", help="Never offer fixes")
    ap.add_argument("--report-ref", help="External abuse report id to reference in the summary")
    ap.add_argument("--rollout-timeout", type=int, default=ROLLOUT_TIMEOUT_SECONDS,
                    help="Seconds to wait for the controller rollout after a disruptive fix")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    return ap


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    if not verbose:
        logging.getLogger("kubernetes").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)


def prompt(ask: Prompt, label: str, default: str = "") -> str:
    if default:
        text = f"  {BOLD}{label}{RESET} [default: {CYAN}{default}{RESET}]: "
    else:
        text = f"  {BOLD}{label}{RESET}: "
    try:
        answer = ask(text).strip()
    except EOFError:
        return default
    return answer or default


def controller_namespaces(clients: Dict[str, Any], controller_name: str) -> List[str]:
    return [ns for ns in kube.list_namespace_names(clients) if kube.controller_exists(clients, controller_name, ns)]


def parse_selection(answer: str, choices: List[str]) -> Optional[List[str]]:
    """Resolve "0"/"all" or a comma separated list of 1-based indexes. None when invalid."""
    answer = answer.strip()
    if answer == "0" or answer.lower() == "all":
        return list(choices)
    selected = []
    for part in answer.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit() or not 1 <= int(part) <= len(choices):
            return None
        selected.append(choices[int(part) - 1])
    return selected or None


def pick_namespaces(clients: Dict[str, Any], controller_name: str, ask: Prompt = input) -> List[str]:
    print(f"\n{BOLD}{BLUE}Namespace Selection{RESET}")
    print("─" * 55)
    try:
        found = controller_namespaces(clients, controller_name)
    except (ApiException, HTTPError) as e:
        logger.warning("cannot list namespaces: %s", e)
        print(f"  {YELLOW}Cannot list namespaces. Using manual input.{RESET}")
        return [prompt(ask, "Namespace", "ingress-nginx")]

    if not found:
        print(f"\n  {RED}No ingress-nginx controller found in any namespace.{RESET}")
        ns = prompt(ask, "Enter namespace manually or press Enter to exit")
        return [ns] if ns else []

    rows = []
    if len(found) > 1:
        rows.append(["[ 0]", "Scan ALL of the above", ""])
    rows += [[f"[{i:2d}]", ns, f"{GREEN}found{RESET}"] for i, ns in enumerate(found, 1)]
    print()
    for line in tabulate(rows, headers=["#", "NAMESPACE", "INGRESS-NGINX"], tablefmt="simple").splitlines():
        print("  " + line)
    print()
    if len(found) == 1:
        print(f"  {GREEN}Auto-selected: {CYAN}{found[0]}{RESET} (only controller found)")
        return found

    while True:
        try:
            answer = ask(f"  {BOLD}Enter number (or comma-separated list, 0 = all):{RESET} ")
        except EOFError:
            return []
        selected = parse_selection(answer, found)
        if selected is None:
            print(f"  {YELLOW}Enter numbers between 1 and {len(found)}, or 0 for all.{RESET}")
            continue
        print(f"\n  {GREEN}Selected:{RESET} " + " ".join(f"{CYAN}{ns}{RESET}" for ns in selected))
        return selected


def collect_settings(args: argparse.Namespace, clients: Dict[str, Any], ask: Prompt = input) -> AuditSettings:
    interactive = args.domain is None or not (args.namespaces or args.all_namespaces)
    if interactive:
        print(f"{BOLD}{BLUE}Configuration Setup{RESET}")
        print("─" * 55)
    domain = args.domain or prompt(ask, "Your domain", DEFAULT_DOMAIN)
    email = args.email
    if email is None and args.domain is None:
        email = prompt(ask, "Admin email", f"admin@{domain}")
    controller_name = args.controller_name or DEFAULT_CONTROLLER_NAME

    if args.namespaces:
        namespaces = args.namespaces
    elif args.all_namespaces:
        try:
            namespaces = controller_namespaces(clients, controller_name)
        except (ApiException, HTTPError) as e:
            raise AuditAborted(f"cannot list namespaces: {e}") from e
        if not namespaces:
            print(f"  {RED}No ingress-nginx controller named {controller_name} found in any namespace.{RESET}")
    else:
        print(f"  {DIM}The scanner looks for a Deployment or DaemonSet named {controller_name}.{RESET}")
        namespaces = pick_namespaces(clients, controller_name, ask)

    return AuditSettings(
        namespaces=namespaces,
        domain=domain,
        email=email or "",
        controller_name=controller_name,
        output_dir=args.output_dir,
        assume_yes=args.yes,
        offer_fixes=not args.no_fix,
        report_ref=args.report_ref,
        rollout_timeout=args.rollout_timeout,
    )


def main(argv=None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    if args.namespaces and args.all_namespaces:
        ap.error("--namespace and --all-namespaces are mutually exclusive")
    if args.yes and args.no_fix:
        ap.error("--yes and --no-fix are mutually exclusive")
    configure_logging(args.verbose)

    try:
        clients = kube.load_clients(args.kubeconfig, args.context)
    except ConfigException as e:
        logger.error("cannot load kubernetes configuration: %s", e)
        return 1

    try:
        settings = collect_settings(args, clients)
        if not settings.namespaces:
            logger.warning("no namespace selected, nothing to audit")
            return 0 if not args.all_namespaces else 1
        print(f"{GREEN}Config saved.{RESET} Running audit for {CYAN}{settings.domain}{RESET}...\n")
        return ScanCoordinator.from_settings(clients, settings).run()
    except AuditAborted as e:
        logger.error("audit aborted: %s", e)
        print(f"\n{RED}{BOLD}Audit aborted:{RESET} {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print(file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
