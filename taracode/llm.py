"""LLM adapter via litellm."""

from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Optional, Tuple

import litellm
litellm.suppress_debug_info = True

from .logger import get_logger

_log = get_logger(__name__)


@dataclass
class LLMResponse:
    content: Optional[str] = None
    usage: Optional[Dict] = None


def _usage_dict(usage) -> Optional[Dict[str, int]]:
    if not usage:
        return None
    return {"prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
            "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
            "total_tokens": getattr(usage, "total_tokens", 0) or 0}


BASE_SYSTEM_PROMPT = """\
You are taracode, a coding assistant with FULL ACCESS to the user's filesystem.

## CORE RULES (ALWAYS FOLLOW)

1. COMPLETE TASKS FULLY - Don't explain what you would do, actually DO IT
2. "file called X" or "create X.md" = YOU MUST use write_file tool
3. EXPLORE FIRST - Always read files before answering questions about them
4. Use REAL file names from the project, never make up names
5. NEVER git_commit or git_add without explicit user permission - only use git_status, git_diff, git_log freely

## TASK WORKFLOW

For ANY task:
1. EXPLORE: Use list_files, read_file to understand the project
2. ACT: Use appropriate tools (write_file, edit_file, etc.)
3. CONFIRM: Tell user what was done

## TOOLS

Use tools by outputting JSON: {"tool": "name", "params": {...}}

FILE TOOLS:
- read_file: {"tool": "read_file", "params": {"file_path": "path"}}
  (optional "start_line" and "end_line" return numbered lines)
- write_file: {"tool": "write_file", "params": {"file_path": "path", "content": "..."}}
- edit_file: {"tool": "edit_file", "params": {"file_path": "path", "old_string": "find", "new_string": "replace"}}
  (add "replace_all": true to replace every occurrence)
- append_file: {"tool": "append_file", "params": {"file_path": "path", "content": "..."}}
- list_files: {"tool": "list_files", "params": {"directory": ".", "recursive": false}}
- find_files: {"tool": "find_files", "params": {"pattern": "*.py", "directory": "."}}
- copy_file: {"tool": "copy_file", "params": {"source_path": "src", "dest_path": "dst"}}
- move_file: {"tool": "move_file", "params": {"source_path": "src", "dest_path": "dst"}}
- delete_file: {"tool": "delete_file", "params": {"file_path": "path"}}
- create_directory: {"tool": "create_directory", "params": {"path": "dir/path"}}
- insert_lines: {"tool": "insert_lines", "params": {"file_path": "path", "line_number": 5, "content": "..."}}
- replace_lines: {"tool": "replace_lines", "params": {"file_path": "path", "start_line": 1, "end_line": 5, "content": "..."}}
- delete_lines: {"tool": "delete_lines", "params": {"file_path": "path", "start_line": 1, "end_line": 5}}

SEARCH:
- search_files: {"tool": "search_files", "params": {"pattern": "term", "directory": "."}}
- execute_command: {"tool": "execute_command", "params": {"command": "make test"}}

GIT (status/diff/log are free, add/commit require user permission):
- git_status: {"tool": "git_status", "params": {}}
- git_diff: {"tool": "git_diff", "params": {}}
- git_log: {"tool": "git_log", "params": {"limit": 10}}
- git_add: {"tool": "git_add", "params": {"files": ["file.py"]}} (ASK FIRST)
- git_commit: {"tool": "git_commit", "params": {"message": "feat: message"}} (ASK FIRST)
- git_branch: {"tool": "git_branch", "params": {}}

## MULTIPLE TOOLS

Call multiple tools at once for efficiency:
{"tool": "list_files", "params": {"directory": "."}}
{"tool": "read_file", "params": {"file_path": "README.md"}}

## OUTPUT FORMAT

For explanations, use this structure:
## Overview
[Brief description]

## Key Components
- **Component**: Description

## Important Files
- path/file - purpose"""

_PLAN_MARKERS = {"completed": "[x]", "in_progress": "[>]"}


def build_system_prompt(working_dir: str, project_context: Optional[str] = None,
                        plan=None) -> str:
    """Base prompt + TARACODE.md + the active plan + the working directory."""
    prompt = BASE_SYSTEM_PROMPT
    if project_context:
        prompt += ("\n\n## PROJECT CONTEXT\nThe following is project-specific guidance "
                   f"from TARACODE.md:\n\n{project_context}")
    if plan is not None:
        prompt += f"\n\n## ACTIVE PLAN\n**{plan.title}**\n"
        for i, task in enumerate(plan.tasks, 1):
            prompt += f"{i}. {_PLAN_MARKERS.get(task.status, '[ ]')} {task.content}\n"
        prompt += "\nUpdate task status as you complete them."
    prompt += f"\n\nCurrent working directory: {working_dir}"
    return prompt


class LLMAdapter:
    """Chat interface to an OpenAI-compatible server. Passes api_key/api_base
    directly to litellm, avoiding env-var pollution."""

    def __init__(self, model: str, api_base: Optional[str] = None,
                 api_key: Optional[str] = None, temperature: float = 0.7,
                 max_tokens: int = 4096):
        self.model = model
        self.api_base = api_base
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def litellm_model(self) -> str:
        # Local servers speak the OpenAI protocol; route through that provider.
        if "/" in self.model and self.model.split("/", 1)[0] == "openai":
            return self.model
        return f"openai/{self.model}"

    def _kwargs(self, messages: List[Dict[str, Any]], timeout: Optional[float]) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.litellm_model, "messages": messages,
            "temperature": self.temperature, "max_tokens": self.max_tokens,
        }
        if self.api_base:
            kwargs["api_base"] = self.api_base
        # litellm's openai route insists on a key; local servers ignore it.
        kwargs["api_key"] = self.api_key or "not-needed"
        if timeout is not None:
            kwargs["timeout"] = timeout
        return kwargs

    def _completion(self, **kwargs):
        try:
            return litellm.completion(**kwargs)
        except litellm.exceptions.AuthenticationError as e:
            raise ConnectionError(f"Auth failed. Check API key.\n{e}")
        except litellm.exceptions.Timeout as e:
            raise ConnectionError(f"Request timed out: {e}")
        except litellm.exceptions.APIConnectionError as e:
            raise ConnectionError(
                f"Cannot connect: model={self.model}, base={self.api_base or 'default'}\n{e}")
        except Exception as e:
            raise ConnectionError(f"LLM error: {type(e).__name__}: {e}")

    def chat(self, messages: List[Dict[str, Any]],
             timeout: Optional[float] = None) -> LLMResponse:
        response = self._completion(**self._kwargs(messages, timeout))
        msg = response.choices[0].message
        usage = _usage_dict(getattr(response, "usage", None))
        _log.debug("chat: %d chars, usage=%s", len(msg.content or ""), usage)
        return LLMResponse(content=msg.content or "", usage=usage)

    def chat_stream(self, messages: List[Dict[str, Any]],
                    timeout: Optional[float] = None
                    ) -> Generator[Tuple[str, Any], None, None]:
        """Streaming chat. Yields (event_type, data) tuples.

        Event types:
          "text": str, incremental text content
          "done": LLMResponse, final complete response
        """
        kwargs = self._kwargs(messages, timeout)
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}
        response_stream = self._completion(**kwargs)

        parts: List[str] = []
        usage = None
        try:
            for chunk in response_stream:
                # Usage-only final chunk
                if getattr(chunk, "usage", None):
                    usage = _usage_dict(chunk.usage)
                if not chunk.choices:
                    continue
                text = getattr(chunk.choices[0].delta, "content", None)
                if text:
                    parts.append(text)
                    yield ("text", text)
        except Exception as e:
            raise ConnectionError(f"Stream interrupted: {type(e).__name__}: {e}")

        yield ("done", LLMResponse(content="".join(parts), usage=usage))
