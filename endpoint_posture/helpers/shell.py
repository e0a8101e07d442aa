import subprocess
import threading
from typing import Any, Callable

from endpoint_posture.core.errors import ProviderUnavailable

DEFAULT_TIMEOUT_S = 15.0


def run_cmd(cmd: list[str], timeout_s: float = DEFAULT_TIMEOUT_S) -> tuple[int, str, str]:
    """
    Run a command and return:
      - return code (rc)
      - stdout (string)
      - stderr (string)

    Raises ProviderUnavailable when the command is missing or does not finish
    within timeout_s; a non-zero rc is returned to the caller to interpret.
    """
    try:
        p = subprocess.run(
            cmd,
            text=True,              # decode output to str instead of bytes
            capture_output=True,    # capture stdout/stderr
            timeout=timeout_s,
            errors="replace",
        )
    except FileNotFoundError as e:
        raise ProviderUnavailable(f"{cmd[0]} not found: {e}") from e
    except subprocess.TimeoutExpired as e:
        raise ProviderUnavailable(f"{cmd[0]} timed out after {timeout_s:g}s") from e
    except OSError as e:
        raise ProviderUnavailable(f"{cmd[0]} could not be started: {e}") from e

    # Normalise None -> "" and strip whitespace
    return p.returncode, (p.stdout or "").strip(), (p.stderr or "").strip()


def run_powershell(script: str, timeout_s: float = DEFAULT_TIMEOUT_S) -> str:
    """Run a PowerShell snippet and return stdout; non-zero exit is a failure."""
    cmd = ["powershell", "-NoProfile", "-NonInteractive", "-Command", script]
    rc, stdout, stderr = run_cmd(cmd, timeout_s)
    if rc != 0:
        raise ProviderUnavailable(f"PowerShell error: {stderr or stdout or f'exit code {rc}'}")
    return stdout


def get_evidence(cmd, rc, stdout, stderr):

    return {
        "cmd": cmd,
        "rc": rc,
        "stdout": stdout,
        "stderr": stderr
    }


def call_with_timeout(fn: Callable[[], Any], timeout_s: float = DEFAULT_TIMEOUT_S, label: str = "") -> Any:
    """
    Run an in-process OS query (registry, service manager, WMI) with a bounded wait.

    The call runs on a daemon thread so a wedged query cannot keep the process
    alive; if it has not returned within timeout_s, ProviderUnavailable is raised
    and the thread is abandoned. Exceptions raised by fn are re-raised here.
    """
    outcome: dict[str, Any] = {}

    def _target() -> None:
        try:
            outcome["value"] = fn()
        except BaseException as e:
            outcome["error"] = e

    worker = threading.Thread(target=_target, name=f"provider:{label or 'call'}", daemon=True)
    worker.start()
    worker.join(timeout_s)
    if worker.is_alive():
        raise ProviderUnavailable(f"{label or 'provider call'} timed out after {timeout_s:g}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("value")
