"""The built-in ``kubectl`` passthrough tool."""

import asyncio
import os
import signal
from typing import Any

from casual_llm import Tool as FunctionDefinition
from casual_llm import ToolParameter
from pydantic import BaseModel

from kubectl_agent.errors import ToolExecutionError
from kubectl_agent.logging import get_logger
from kubectl_agent.tool import InvokeToolOptions

logger = get_logger("kubectl_tool")

DEFAULT_TIMEOUT = 300.0
MAX_OUTPUT_SIZE = 1024 * 1024


class ExecResult(BaseModel):
    command: str
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    error: str | None = None


def _truncate(text: str) -> str:
    if len(text) > MAX_OUTPUT_SIZE:
        return text[:MAX_OUTPUT_SIZE] + "\n... (output truncated)"
    return text


class KubectlTool:
    """Runs a kubectl command line against the configured cluster.

    Commands run through the shell so pipes and redirects into the work
    directory behave as the model expects. A non-zero exit is reported in the
    result rather than raised, so the model can read kubectl's error and try
    again.
    """

    name = "kubectl"
    description = (
        "Executes a kubectl command against the user's Kubernetes cluster. "
        "Use it to inspect, create, update or delete cluster resources."
    )

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    def function_definition(self) -> FunctionDefinition:
        return FunctionDefinition(
            name=self.name,
            description=self.description,
            parameters={
                "command": ToolParameter(
                    type="string",
                    description="The complete kubectl command to execute, e.g. 'kubectl get pods -n default'",
                ),
                "modifies_resource": ToolParameter(
                    type="string",
                    description=(
                        "Whether the command modifies a kubernetes resource. "
                        "One of 'yes', 'no' or 'unknown'."
                    ),
                ),
            },
            required=["command"],
        )

    async def run(self, args: dict[str, Any], options: InvokeToolOptions) -> ExecResult:
        command = args.get("command")
        if not isinstance(command, str) or not command.strip():
            raise ToolExecutionError("kubectl: 'command' argument is required")
        command = command.strip()
        if command.split()[0] != "kubectl":
            raise ToolExecutionError(f"kubectl: only kubectl commands are allowed, got {command!r}")

        env = dict(os.environ)
        if options.kubeconfig:
            env["KUBECONFIG"] = os.path.expanduser(options.kubeconfig)

        logger.info(f"Executing: {command} (cwd={options.work_dir})")
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=options.work_dir,
            env=env,
            start_new_session=True,
        )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError) as e:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError):
                process.kill()
            await process.wait()
            if isinstance(e, asyncio.CancelledError):
                raise
            logger.warning(f"Command timed out after {self.timeout}s: {command}")
            return ExecResult(command=command, error=f"command timed out after {self.timeout:g}s")

        result = ExecResult(
            command=command,
            stdout=_truncate(stdout.decode("utf-8", errors="replace")),
            stderr=_truncate(stderr.decode("utf-8", errors="replace")),
            exit_code=process.returncode,
        )
        if process.returncode != 0:
            logger.debug(f"Command exited with {process.returncode}: {command}")
            result.error = f"command exited with code {process.returncode}"
        return result
