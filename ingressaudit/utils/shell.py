import logging
import shutil
import subprocess
from typing import Optional
from ..errors import CommandError

logger = logging.getLogger(__name__)


def cmd_exists(name: str) -> bool:
    return shutil.which(name) is not None


def run_cmd(name: str, *args: str) -> None:
    """Run an external command, streaming its output to the terminal."""
    argv = [name, *args]
    logger.debug("running %s", argv)
    try:
        proc = subprocess.run(argv, check=False)
    except OSError as e:
        raise CommandError(argv, 127, str(e)) from e
    if proc.returncode != 0:
        raise CommandError(argv, proc.returncode)


def capture(name: str, *args: str, stdin: Optional[bytes] = None) -> str:
    """Run an external command and return its trimmed stdout."""
    argv = [name, *args]
    logger.debug("capturing %s", argv)
    try:
        proc = subprocess.run(argv, input=stdin, capture_output=True, check=False)
    except OSError as e:
        raise CommandError(argv, 127, str(e)) from e
    if proc.returncode != 0:
        raise CommandError(argv, proc.returncode, proc.stderr.decode(errors="ignore").strip())
    return proc.stdout.decode(errors="ignore").strip()
