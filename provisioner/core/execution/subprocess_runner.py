"""
Core subprocess runner.

The SINGLE PLACE where ``subprocess.run`` is called by actions.
Privilege escalation, logging, and error shaping are centralised here.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from typing import Any

logger = logging.getLogger(__name__)

# Tail kept from stdout/stderr in results
_OUTPUT_TAIL = 2000

# stderr fragments sudo prints when it refuses to run the command
_SUDO_REFUSALS = (
    "incorrect password",
    "not in the sudoers",
    "a terminal is required",
    "a password is required",
    "no tty present",
)


def is_root() -> bool:
    return os.geteuid() == 0


def _run_subprocess(
    cmd: list[str],
    *,
    needs_sudo: bool = False,
    timeout: int = 1800,
    input_text: str | None = None,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
    interactive: bool = False,
) -> dict[str, Any]:
    """Run a command, escalating through sudo when required.

    Sudo is invoked interactively: it prompts on the controlling
    terminal, never through stdin, so ``input_text`` stays free for
    the command itself (e.g. ``sudo tee``).

    Args:
        cmd: Command list for ``subprocess.run()``.
        needs_sudo: Whether the command requires root.
        timeout: Seconds before ``TimeoutExpired``.
        input_text: Data written to the command's stdin.
        env_overrides: Extra env vars; values are ``$VAR``-expanded.
        cwd: Working directory for the command.
        interactive: Leave stdin/stdout/stderr attached to the terminal
            (for login flows that prompt the operator). Nothing is captured.

    Returns:
        ``{"ok": True, "stdout": "...", "elapsed_ms": N}`` on success,
        ``{"ok": False, "error": "...", ...}`` on failure.
    """
    # ── Sudo handling ──
    if needs_sudo and not is_root():
        if shutil.which("sudo") is None:
            return {
                "ok": False,
                "needs_sudo": True,
                "error": "This step requires root and sudo is not available.",
            }
        cmd = ["sudo"] + cmd

    # ── Environment ──
    env = os.environ.copy()
    if env_overrides:
        for key, value in env_overrides.items():
            env[key] = os.path.expandvars(value)

    logger.debug("Executing: %s", " ".join(cmd))

    # ── Execute ──
    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            capture_output=not interactive,
            text=True,
            timeout=timeout,
            input=input_text,
            env=env,
            cwd=cwd,
        )
        elapsed_ms = int((time.monotonic() - start) * 1000)

        if result.returncode == 0:
            return {
                "ok": True,
                "stdout": result.stdout[-_OUTPUT_TAIL:] if result.stdout else "",
                "elapsed_ms": elapsed_ms,
            }

        stderr = result.stderr[-_OUTPUT_TAIL:] if result.stderr else ""

        if needs_sudo and is_sudo_refusal(stderr):
            return {
                "ok": False,
                "needs_sudo": True,
                "error": stderr.strip() or "sudo refused",
                "returncode": result.returncode,
            }

        return {
            "ok": False,
            "error": f"Command failed (exit {result.returncode})",
            "returncode": result.returncode,
            "stderr": stderr,
            "stdout": result.stdout[-_OUTPUT_TAIL:] if result.stdout else "",
            "elapsed_ms": elapsed_ms,
        }

    except subprocess.TimeoutExpired:
        return {"ok": False, "error": f"Command timed out ({timeout}s)"}
    except FileNotFoundError:
        return {"ok": False, "missing": True, "error": f"Command not found: {cmd[0]}"}
    except OSError as e:
        logger.exception("Subprocess error: %s", cmd)
        return {"ok": False, "error": str(e)}


def is_sudo_refusal(stderr: str) -> bool:
    """True when ``stderr`` is sudo declining to run the command."""
    lowered = stderr.lower()
    return any(fragment in lowered for fragment in _SUDO_REFUSALS)


def describe_failure(result: dict[str, Any]) -> str:
    """Flatten a failed run into one message for an ActionResult."""
    message = result.get("error", "Command failed")
    stderr = (result.get("stderr") or "").strip()
    if stderr:
        last_line = stderr.splitlines()[-1]
        message = f"{message}: {last_line}"
    return message
