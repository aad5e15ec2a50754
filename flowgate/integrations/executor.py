"""Phase executor implementations.

The runner hands each phase to a PhaseExecutor and only ever sees the
terminal outcome. ClaudeCodeExecutor performs the phase by invoking a
slash command of the Claude Code CLI in headless mode:

    claude -p "/<action> <task-id>" --output-format stream-json --verbose

The outcome is derived from the process exit code and the last verdict
marker in the agent's text output.
"""

import json
import logging
import os
import re
import shutil
import subprocess
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from flowgate import EXECUTOR_COMMAND
from flowgate.integrations.errors import ExecutorNotInstalledError, ExecutorTimeoutError
from flowgate.utils.logging import log_command, log_message
from flowgate.workflow.states import Action
from flowgate.workflow.transitions import PhaseOutcome

logger = logging.getLogger(__name__)

# Canonical: **Verdict**: APPROVED / REJECTED (also "Verdict: ...")
_VERDICT_PATTERNS = [
    r"(?:\*\*)?Verdict(?:\*\*)?\s*:\s*\**\s*(APPROVED|REJECTED|ACCEPTED)",
    r"^-\s*\*\*(APPROVED|REJECTED)\*\*\s*(?:-|$)",
]


@dataclass(frozen=True)
class PhaseResult:
    """Terminal result of one executor invocation."""

    outcome: PhaseOutcome
    output: str = ""
    return_code: int = 0


class PhaseExecutor(Protocol):
    """Performs the work of one phase for one target (task or epic id)."""

    def run_phase(self, action: Action, target: str, *, fresh_context: bool) -> PhaseResult: ...


def parse_verdict(text: str) -> PhaseOutcome | None:
    """Find the final review verdict in agent output.

    The last marker wins, so a summary verdict at the end of the output
    overrides any verdicts quoted earlier.

    Examples:
        >>> parse_verdict("**Verdict**: REJECTED\\n\\nMissing tests")
        <PhaseOutcome.REJECTED: 'rejected'>
        >>> parse_verdict("- **APPROVED** - looks good")
        <PhaseOutcome.ACCEPTED: 'accepted'>
        >>> parse_verdict("no marker here") is None
        True
    """
    if not text or not text.strip():
        return None

    matches: list[tuple[int, str]] = []
    for pattern in _VERDICT_PATTERNS:
        for match in re.finditer(pattern, text, re.IGNORECASE | re.MULTILINE):
            matches.append((match.end(), match.group(1).upper()))

    if not matches:
        return None
    matches.sort(key=lambda m: m[0])
    if matches[-1][1] == "REJECTED":
        return PhaseOutcome.REJECTED
    return PhaseOutcome.ACCEPTED


def extract_stream_text(line: str) -> str:
    """Return the human-readable text carried by one stream-json event.

    Lines that are not JSON are returned as-is.
    """
    try:
        event = json.loads(line)
    except json.JSONDecodeError:
        return line
    if not isinstance(event, dict):
        return ""

    event_type = event.get("type")
    if event_type == "assistant":
        content = (event.get("message") or {}).get("content") or []
        return "".join(
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        )
    if event_type == "content_block_delta":
        return (event.get("delta") or {}).get("text", "")
    if event_type == "result":
        result = event.get("result")
        return result if isinstance(result, str) else ""
    if event_type == "error":
        return f"ERROR: {(event.get('error') or {}).get('message', 'Unknown error')}"
    return ""


def check_cli_installed(cli_name: str = EXECUTOR_COMMAND) -> tuple[bool, str]:
    """Check if a CLI tool is installed and answers ``--version``.

    Returns:
        (is_valid, message) where message is the version string if
        installed, or an error message if not.
    """
    if shutil.which(cli_name):
        try:
            result = subprocess.run(
                [cli_name, "--version"],
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                timeout=10,
            )
        except (OSError, subprocess.SubprocessError) as e:
            log_message(f"Failed to check {cli_name} CLI: {e}")
        else:
            log_command(f"{cli_name} --version", result.returncode)
            version_output = result.stdout.strip() or result.stderr.strip()
            if result.returncode == 0 and version_output:
                return True, version_output

    return False, f"{cli_name} CLI is not installed or not in PATH"


class ClaudeCodeExecutor:
    """Runs phases through the Claude Code CLI.

    Review phases that need fresh context run without session persistence
    so the reviewer never sees the conversation that produced the work.

    Attributes:
        model: Model override passed with --model (empty = CLI default)
        timeout_seconds: Per-phase timeout (None = no timeout)
        continue_sessions: Continue the previous session for phases that
            do not need fresh context
    """

    def __init__(
        self,
        model: str = "",
        timeout_seconds: float | None = None,
        continue_sessions: bool = False,
        output_callback: Callable[[str], None] | None = None,
        cli: str = EXECUTOR_COMMAND,
    ) -> None:
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.continue_sessions = continue_sessions
        self.cli = cli
        self._output_callback = output_callback

    def build_command(self, action: Action, target: str, *, fresh_context: bool) -> list[str]:
        """Build the CLI invocation for one phase run."""
        cmd = [
            self.cli,
            "-p",
            f"/{action.value} {target}",
            "--output-format",
            "stream-json",
            "--verbose",
        ]
        if self.model:
            cmd.extend(["--model", self.model])
        if fresh_context:
            cmd.append("--no-session-persistence")
        elif self.continue_sessions:
            cmd.append("--continue")
        return cmd

    def check_installed(self) -> None:
        """Raise ExecutorNotInstalledError when the CLI is unavailable."""
        ok, message = check_cli_installed(self.cli)
        if not ok:
            raise ExecutorNotInstalledError(message)

    def run_phase(self, action: Action, target: str, *, fresh_context: bool) -> PhaseResult:
        """Run one phase and map the result to an outcome.

        Non-zero exit means ``failed``. Otherwise the last verdict marker
        decides; output without a marker counts as ``accepted``.

        Raises:
            ExecutorNotInstalledError: If the CLI cannot be started.
            ExecutorTimeoutError: If the run exceeds timeout_seconds.
        """
        cmd = self.build_command(action, target, fresh_context=fresh_context)
        log_message(f"Executing: {' '.join(cmd[:3])} (fresh_context={fresh_context})")

        text_parts: list[str] = []

        def on_line(line: str) -> None:
            if not line.strip():
                return
            text = extract_stream_text(line)
            if text:
                text_parts.append(text)
                if self._output_callback:
                    self._output_callback(text)

        try:
            return_code, raw_output = self._run_streaming_with_timeout(
                cmd, on_line, self.timeout_seconds, env={"FORCE_COLOR": "0"}
            )
        except FileNotFoundError as e:
            raise ExecutorNotInstalledError(f"{self.cli} CLI is not in PATH") from e

        log_command(" ".join(cmd[:3]), return_code)
        text = "\n".join(text_parts)

        if return_code != 0:
            return PhaseResult(PhaseOutcome.FAILED, raw_output, return_code)

        return PhaseResult(parse_verdict(text) or PhaseOutcome.ACCEPTED, raw_output, return_code)

    def _run_streaming_with_timeout(
        self,
        cmd: list[str],
        output_callback: Callable[[str], None],
        timeout_seconds: float | None,
        env: dict[str, str] | None = None,
    ) -> tuple[int, str]:
        """Run subprocess with streaming output and timeout enforcement.

        A watchdog thread waits on a stop event for timeout_seconds and,
        if not stopped in time, terminates the process (SIGTERM, then
        SIGKILL after 5 seconds).

        Raises:
            ExecutorTimeoutError: If execution exceeds timeout_seconds.
        """
        process_env = {**os.environ, **env} if env else None

        process = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
            env=process_env,
        )

        output_lines: list[str] = []
        stop_watchdog_event = threading.Event()
        did_timeout = False

        def watchdog() -> None:
            nonlocal did_timeout
            stopped = stop_watchdog_event.wait(timeout=timeout_seconds)
            if not stopped:
                did_timeout = True
                logger.warning(
                    "Phase execution timed out",
                    extra={"timeout_seconds": timeout_seconds, "cmd": cmd[0]},
                )
                process.terminate()
                try:
                    process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    logger.warning("Process did not terminate, sending SIGKILL")
                    process.kill()
                    process.wait()

        watchdog_thread: threading.Thread | None = None
        if timeout_seconds is not None:
            watchdog_thread = threading.Thread(target=watchdog, daemon=True)
            watchdog_thread.start()

        try:
            if process.stdout:
                for line in process.stdout:
                    output_callback(line.rstrip("\n"))
                    output_lines.append(line)

            process.wait()
            stop_watchdog_event.set()

            if watchdog_thread:
                watchdog_thread.join(timeout=1)

            if did_timeout:
                raise ExecutorTimeoutError(
                    f"Phase timed out after {timeout_seconds}s",
                    timeout_seconds=timeout_seconds,
                )

            return_code = process.returncode if process.returncode is not None else -1
            return return_code, "".join(output_lines)

        finally:
            if process.poll() is None:
                process.kill()
                process.wait()


__all__ = [
    "PhaseResult",
    "PhaseExecutor",
    "ClaudeCodeExecutor",
    "parse_verdict",
    "extract_stream_text",
    "check_cli_installed",
]
