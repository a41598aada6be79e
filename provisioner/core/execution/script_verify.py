"""
Script integrity — checksum verification and curl-pipe rewriting.

Remote installer scripts are never piped straight into a shell. They
are downloaded into the cache, optionally checked against a SHA256,
and executed from the local path.
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

# Detects curl-pipe-shell patterns: "curl -fsSL URL | bash"
_CURL_PIPE_RE = re.compile(
    r"""curl\s+[^|]+\|\s*(?:ba|z)?sh\b""",
    re.IGNORECASE,
)

# Same, wrapped in a command substitution: sh -c "$(curl -fsSL URL)"
_CURL_SUBST_RE = re.compile(
    r"""\$\(\s*curl\s+[^)]*\)""",
    re.IGNORECASE,
)

_URL_RE = re.compile(r"""https?://[^\s'"()|]+""")


def file_sha256(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_checksum(path: Path, expected: str) -> tuple[bool, str]:
    """Compare a file's SHA256 against ``expected`` (``sha256:`` prefix optional).

    Returns:
        (matches, actual_hex_digest)
    """
    actual = file_sha256(path)
    wanted = expected.removeprefix("sha256:").strip().lower()
    return actual == wanted, actual


def is_curl_pipe_command(command: str) -> bool:
    """Check if a shell command line fetches a script and runs it.

    Examples that match::

        curl -fsSL https://... | bash
        sh -c "$(curl -fsSL https://...)"
    """
    return bool(_CURL_PIPE_RE.search(command) or _CURL_SUBST_RE.search(command))


def extract_script_url(command: str) -> str | None:
    """Extract the script URL from a curl-pipe command line."""
    m = _URL_RE.search(command)
    return m.group(0) if m else None


def extract_shell_args(command: str) -> list[str]:
    """Arguments handed to the shell after the pipe.

    ``curl ... | sh -s -- -y`` → ``["-s", "--", "-y"]``
    """
    pipe_idx = command.find("|")
    if pipe_idx < 0:
        return []
    tokens = command[pipe_idx + 1:].split()
    return tokens[1:] if len(tokens) > 1 else []


def script_command(path: Path, args: list[str] | None = None, interpreter: str = "bash") -> list[str]:
    """Command that runs a local script file instead of a piped download."""
    args = list(args or [])
    # "sh -s -- ARGS" reads the script from stdin; with a file, only ARGS matter
    if args[:1] == ["-s"]:
        args = args[1:]
    if args[:1] == ["--"]:
        args = args[1:]
    return [interpreter, str(path), *args]
