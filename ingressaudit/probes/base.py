from typing import Any, Dict
from ..engine.context import AuditContext


class Probe:
    """A single audit phase. Probes only touch the cluster through ``clients``
    and only report through the context they are given."""

    name: str = ""
    title: str = ""

    def __init__(self, clients: Dict[str, Any]):
        self.clients = clients

    def run(self, ctx: AuditContext) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<Probe {self.name!r}>"
