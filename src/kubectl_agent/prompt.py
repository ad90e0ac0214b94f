import json
from dataclasses import dataclass

from kubectl_agent.tool_registry import Tools
from kubectl_agent.utils import read_prompt_files, render_system_prompt

DEFAULT_SYSTEM_PROMPT_TEMPLATE = """\
You are kubectl-agent, an assistant that helps users operate their Kubernetes clusters.

Work step by step. Use the available tools to inspect the cluster before
making changes, and explain what you did once the task is finished.
Always say whether a command modifies a resource.

Available tools: {{ tool_names }}
{% if enable_tool_use_shim %}
You cannot call functions directly. Instead, reply with exactly one fenced
JSON block in this format:

```json
{
  "thought": "your reasoning about what to do next",
  "action": {
    "name": "tool name",
    "reason": "why you are running this tool",
    "command": "the complete command to run",
    "modifies_resource": "yes, no or unknown"
  }
}
```

When the task is complete, leave out "action" and put your final reply in
"answer" instead.

Tool definitions:
{{ tools_as_json }}
{% endif %}
"""


@dataclass
class PromptData:
    tools: Tools
    enable_tool_use_shim: bool = False

    @property
    def tool_names(self) -> str:
        return ", ".join(self.tools.names())

    @property
    def tools_as_json(self) -> str:
        definitions = [
            tool.function_definition().model_dump(exclude_none=True) for tool in self.tools.all_tools()
        ]
        return json.dumps(definitions, indent=2)


def generate_prompt(
    data: PromptData,
    default_template: str = DEFAULT_SYSTEM_PROMPT_TEMPLATE,
    template_file: str | None = None,
    extra_paths: list[str] | None = None,
) -> str:
    """Render the system prompt.

    A template file replaces the built-in template and extra prompt files
    are appended to whichever template is used. The template sees
    ``tool_names``, ``tools_as_json`` and ``enable_tool_use_shim``.

    Raises:
        ConfigError: If a prompt file cannot be read or the template fails
            to render.
    """
    source = read_prompt_files(template_file, extra_paths or [], default_template)
    return render_system_prompt(
        source,
        {
            "tool_names": data.tool_names,
            "tools_as_json": data.tools_as_json,
            "enable_tool_use_shim": data.enable_tool_use_shim,
        },
    )
