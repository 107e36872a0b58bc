"""Reasoning and execution backend over the Claude Code CLI.

Each call launches ``claude -p <prompt>`` as an asyncio subprocess, waits for
it through a RunPoller, and extracts the JSON answer from its output.
"""

import asyncio
import json
import logging
import shlex
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Tuple

from agentloop.core.exceptions import BackendError, BackendTimeoutError, TaskCancelledError
from agentloop.core.output_parser import OutputParser
from agentloop.core.plan import ExecutionPlan, PlanStep
from agentloop.core.prompt_loader import PromptLoader
from agentloop.core.results import ExecutionResult, ExecutionStatus

from .base import Judgment
from .polling import RunPoller
from .tools import CodeInterpreterTools
from .workspace import Workspace

if TYPE_CHECKING:
    from agentloop.orchestrator.retry_policy import RetryContext

logger = logging.getLogger(__name__)

PREVIOUS_OUTPUT_LENGTH = 300

_RESULT_STATUSES = {
    "success": ExecutionStatus.SUCCESS,
    "partialsuccess": ExecutionStatus.FAILED,
    "failure": ExecutionStatus.FAILED,
    "error": ExecutionStatus.FAILED,
    "timeout": ExecutionStatus.TIMED_OUT,
    "timed_out": ExecutionStatus.TIMED_OUT,
    "cancelled": ExecutionStatus.CANCELLED,
}


@dataclass
class CliOutput:
    """Captured output of one CLI invocation."""

    stdout: str
    stderr: str
    exit_code: int
    duration_seconds: float

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def error_message(self) -> str:
        message = f"Claude exited with code {self.exit_code}"
        if self.stderr:
            message += f": {self.stderr[:500]}"
        return message


class ClaudeCliBackend:
    """Implements both ReasoningBackend and ExecutionBackend over the CLI."""

    def __init__(
        self,
        workspace: Workspace,
        command: str = "claude --dangerously-skip-permissions",
        model: Optional[str] = None,
        tools: Optional[CodeInterpreterTools] = None,
        use_tools: bool = True,
        poller: Optional[RunPoller] = None,
        prompt_loader: Optional[PromptLoader] = None,
    ):
        """Initialize the backend.

        Args:
            workspace: Directory the CLI runs in
            command: Claude CLI command (e.g., "claude --dangerously-skip-permissions")
            model: Optional model name passed via ``--model``
            tools: Tool set declared to execution runs
            use_tools: Whether to restrict execution runs to the declared tools
            poller: Waits for each invocation (poll interval and run timeout)
            prompt_loader: Template loader (defaults to the packaged prompts)
        """
        self.workspace = workspace
        self.command = command
        self.model = model
        self.tools = tools or CodeInterpreterTools()
        self.use_tools = use_tools
        self.poller = poller or RunPoller()
        self.prompts = prompt_loader or PromptLoader()
        self._invocations = 0

    # Reasoning backend

    async def propose_plan(self, request: str, input_files: Sequence[str]) -> Dict[str, Any]:
        """Ask for an initial plan."""
        prompt = self.prompts.render_template(
            "planning", {"request": request, "input_files": list(input_files)}
        )
        return await self._ask_json(prompt, "planning")

    async def propose_refinement(self, plan: ExecutionPlan, feedback: str) -> Dict[str, Any]:
        """Ask for a replacement plan informed by execution feedback."""
        prompt = self.prompts.render_template(
            "refinement",
            {
                "request": plan.original_request,
                "version": plan.version,
                "plan_json": json.dumps(plan.to_prompt_dict(), indent=2),
                "feedback": feedback,
            },
        )
        return await self._ask_json(prompt, "refinement")

    async def judge(
        self, step: PlanStep, result: ExecutionResult, context: "RetryContext"
    ) -> Judgment:
        """Ask for a verdict on a failed attempt."""
        prompt = self.prompts.render_template(
            "evaluation",
            {
                "order": step.order,
                "description": step.description,
                "expected_output": step.expected_output or "Not specified",
                "status": result.status.value,
                "attempt_number": context.attempt_number,
                "max_attempts": context.max_attempts,
                "output": OutputParser.sanitize_output(result.output, 4000) or "None",
                "error": result.error_message or "None",
                "failure_history": list(context.failures),
            },
        )
        return Judgment.from_dict(await self._ask_json(prompt, "evaluation"))

    async def assess_impossibility(self, failures: Sequence[str]) -> Tuple[bool, str]:
        """Ask whether the accumulated failures make the task impossible."""
        prompt = self.prompts.render_template(
            "impossibility", {"failure_history": list(failures)}
        )
        data = await self._ask_json(prompt, "impossibility")
        return (
            OutputParser.parse_bool(data.get("impossible")),
            str(data.get("explanation") or ""),
        )

    # Execution backend

    async def run(
        self,
        step: PlanStep,
        previous_results: Optional[Mapping[int, ExecutionResult]] = None,
        retry_hint: Optional[str] = None,
    ) -> ExecutionResult:
        """Execute one step in the workspace, told what earlier steps produced."""
        prompt = self.prompts.render_template(
            "execution",
            {
                "workspace": str(self.workspace.root),
                "order": step.order,
                "description": step.description,
                "step_type": step.step_type.value,
                "expected_output": step.expected_output or "Not specified",
                "script_hint": step.script_hint or "None",
                "tools": self.tools.describe(),
                "previous_results": describe_previous_results(previous_results or {}),
                "retry_hint": retry_hint,
            },
        )
        script_path = self.workspace.save_script(f"step_{step.order:02d}_prompt.md", prompt)
        started = Workspace.now()
        clock = time.monotonic()

        try:
            output = await self._invoke(prompt, f"step {step.order}", with_tools=True)
        except BackendTimeoutError as e:
            return ExecutionResult(
                step_order=step.order,
                status=ExecutionStatus.TIMED_OUT,
                error_message=str(e),
                duration_seconds=time.monotonic() - clock,
                script_path=str(script_path),
            )

        result = self._parse_execution_output(step, output)
        result.generated_files = self.workspace.collect_outputs(started)
        result.script_path = str(script_path)
        return result

    def _parse_execution_output(self, step: PlanStep, output: CliOutput) -> ExecutionResult:
        if not output.success:
            return ExecutionResult(
                step_order=step.order,
                status=ExecutionStatus.FAILED,
                output=OutputParser.sanitize_output(output.stdout),
                error_message=output.error_message,
                duration_seconds=output.duration_seconds,
            )

        data = OutputParser.extract_json(output.stdout, strict=False)
        if not isinstance(data, dict) or "result" not in data:
            # No structured answer; a clean exit counts as success
            return ExecutionResult(
                step_order=step.order,
                status=ExecutionStatus.SUCCESS,
                output=OutputParser.sanitize_output(output.stdout),
                duration_seconds=output.duration_seconds,
            )

        key = str(data.get("result", "")).strip().lower().replace(" ", "")
        status = _RESULT_STATUSES.get(key, ExecutionStatus.FAILED)
        errors = data.get("errors") or []
        if isinstance(errors, str):
            errors = [errors]

        error_message = None
        if status != ExecutionStatus.SUCCESS:
            error_message = "; ".join(str(e) for e in errors) or f"Step reported '{data['result']}'"

        return ExecutionResult(
            step_order=step.order,
            status=status,
            output=str(data.get("output") or ""),
            error_message=error_message,
            duration_seconds=output.duration_seconds,
        )

    # Process management

    async def _ask_json(self, prompt: str, purpose: str) -> Dict[str, Any]:
        """Invoke the CLI and return the JSON object in its answer.

        Raises:
            BackendError: If the CLI fails or answers without a JSON object
        """
        output = await self._invoke(prompt, purpose, with_tools=False)
        if not output.success:
            raise BackendError(f"{purpose} call failed: {output.error_message}")
        return OutputParser.extract_json_object(output.stdout)

    def _build_command(self, prompt: str, with_tools: bool) -> List[str]:
        cmd = shlex.split(self.command) + ["-p", prompt]
        if self.model:
            cmd += ["--model", self.model]
        if with_tools and self.use_tools:
            cmd += ["--allowedTools", self.tools.allowed_tools_argument()]
        return cmd

    async def _invoke(self, prompt: str, purpose: str, with_tools: bool) -> CliOutput:
        """Run the CLI once and capture its output.

        Raises:
            BackendError: If the CLI cannot be started
            BackendTimeoutError: If the run exceeds the poller timeout
        """
        self._invocations += 1
        run_id = f"claude run #{self._invocations} ({purpose})"
        cmd = self._build_command(prompt, with_tools)
        self.workspace.ensure_exists()
        start_time = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.workspace.root),
            )
        except FileNotFoundError as e:
            raise BackendError(
                f"Claude CLI not found. Is it installed? Command: {self.command}"
            ) from e
        except OSError as e:
            raise BackendError(f"Failed to start Claude: {e}") from e

        communicate = asyncio.create_task(process.communicate())

        async def fetch_status() -> bool:
            return communicate.done()

        try:
            await self.poller.wait_for_completion(fetch_status, bool, run_id=run_id)
            stdout, stderr = communicate.result()
        except (BackendTimeoutError, TaskCancelledError, asyncio.CancelledError):
            await _terminate(process, communicate)
            raise

        duration = time.monotonic() - start_time
        logger.debug("%s exited with %s after %.1fs", run_id, process.returncode, duration)

        return CliOutput(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=process.returncode if process.returncode is not None else -1,
            duration_seconds=duration,
        )


async def _terminate(process: asyncio.subprocess.Process, communicate: "asyncio.Task") -> None:
    """Kill a running CLI process and reap it."""
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    # Pipes close once the process dies, so communicate() finishes on its own
    await asyncio.gather(communicate, return_exceptions=True)


def describe_previous_results(
    results: Mapping[int, ExecutionResult], max_length: int = PREVIOUS_OUTPUT_LENGTH
) -> List[str]:
    """One line per earlier step: its status, output preview and files."""
    lines = []
    for order in sorted(results):
        result = results[order]
        output = " ".join((result.output or "").split()) or "No output"
        if len(output) > max_length:
            output = output[:max_length] + "..."
        line = f"Step {order}: {'Success' if result.success else 'Failed'} - {output}"
        if result.generated_files:
            line += f" (files: {', '.join(result.generated_files)})"
        lines.append(line)
    return lines
