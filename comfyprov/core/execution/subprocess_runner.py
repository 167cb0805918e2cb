"""
Subprocess runner — the single place where adapters start processes.

Environment overrides, privilege escalation and output capture are
handled here so that every collaborator call behaves the same way.
No timeout is imposed unless the caller asks for one: package installs
and clones are allowed to take as long as they take.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from typing import Any

logger = logging.getLogger(__name__)

# Keep receipts and logs readable: installers can print megabytes.
_OUTPUT_TAIL = 4000


def _tail(text: str | None) -> str:
    return text[-_OUTPUT_TAIL:] if text else ""


def run_subprocess(
    cmd: list[str],
    *,
    needs_root: bool = False,
    timeout: int | None = None,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run a command and report the outcome as a dict.

    When ``needs_root`` is set and the process is not root, the command
    is prefixed with ``sudo -n``. sudo resets the environment, so the
    overrides are then passed on the command line through ``env``. Stdin
    is always closed: nothing may prompt.

    Returns:
        ``{"ok": True, "stdout": "...", "stderr": "...", "elapsed_ms": N}``
        on success, ``{"ok": False, "error": "...", ...}`` on failure.
    """
    if needs_root and hasattr(os, "geteuid") and os.geteuid() != 0:
        if shutil.which("sudo") is None:
            return {
                "ok": False,
                "error": f"'{cmd[0]}' requires root and sudo is not available",
            }
        overrides = [f"{k}={v}" for k, v in (env_overrides or {}).items()]
        cmd = ["sudo", "-n", "env", *overrides, *cmd] if overrides else ["sudo", "-n", *cmd]

    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)

    logger.debug("Executing: %s (cwd=%s)", " ".join(cmd), cwd)
    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            stdin=subprocess.DEVNULL,
            env=env,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        return {"ok": False, "error": f"Command timed out ({timeout}s)"}
    except FileNotFoundError:
        return {"ok": False, "error": f"Command not found: {cmd[0]}"}
    except OSError as e:
        logger.exception("Subprocess error: %s", cmd)
        return {"ok": False, "error": str(e)}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    if result.returncode == 0:
        return {
            "ok": True,
            "stdout": _tail(result.stdout),
            "stderr": _tail(result.stderr),
            "elapsed_ms": elapsed_ms,
        }

    return {
        "ok": False,
        "error": f"Command failed (exit {result.returncode})",
        "return_code": result.returncode,
        "stderr": _tail(result.stderr),
        "stdout": _tail(result.stdout),
        "elapsed_ms": elapsed_ms,
    }
