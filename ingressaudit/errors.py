from typing import Sequence


class AuditError(Exception):
    pass


class AuditAborted(AuditError):
    """Raised when the audit cannot proceed at all (cluster, namespace or tooling)."""


class CommandError(AuditError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        msg = f"`{' '.join(self.argv)}` exited with status {returncode}"
        if stderr:
            msg += f": {stderr}"
        super().__init__(msg)
