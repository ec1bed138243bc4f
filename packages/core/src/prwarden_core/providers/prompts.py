"""Prompt construction and the process-lifetime prompt cache.

System prompts depend only on (review kind, policy, language), so they are
rendered once and shared by every worker thread. The cache is an explicit
object handed to the reviewer at construction time rather than module
state; it is filled lazily and never invalidated.
"""

from __future__ import annotations

import threading
from typing import Callable

from prwarden_core.models import FileDiff, PullRequestMetadata
from prwarden_core.utils.language import LANGUAGE_NAMES

_ISSUE_SCHEMA = """{
  "issues": [
    {
      "id": "<short stable identifier, e.g. SEC-001>",
      "title": "<one-line summary>",
      "severity": "<info|warn|error>",
      "category": "<security|correctness|performance|docs|tests|style>",
      "file": "<path of the file>",
      "line": <line number in the new file, or 0 if not line-specific>,
      "rationale": "<why this is a problem>",
      "recommendation": "<what to change>",
      "fixExample": "<optional short code example, or null>"
    }
  ]
}"""


class PromptCache:
    def __init__(self):
        self._entries: dict[tuple, str] = {}
        self._lock = threading.Lock()

    def get_or_build(self, key: tuple, build: Callable[[], str]) -> str:
        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                cached = build()
                self._entries[key] = cached
            return cached

    def __len__(self) -> int:
        return len(self._entries)


def _language_instruction(language: str) -> str:
    name = LANGUAGE_NAMES.get(language, language)
    return f"Write every title, rationale and recommendation in {name}."


def build_file_system_prompt(policy: str, language: str) -> str:
    return f"""You are a strict and precise senior code reviewer.
Review the unified diff below and report issues according to the policy.

Policy:
{policy}

Rules:
- Focus on added lines (starting with '+') for direct violations.
- Also consider implications of removed lines (starting with '-') — e.g. deleted null checks,
  removed error handling, dropped permission guards.
- Do not comment on code that already follows the policy.
- Avoid assumptions when context is unclear. Be concise and actionable.

{_language_instruction(language)}"""


def build_metadata_system_prompt(policy: str, language: str) -> str:
    return f"""You are reviewing the metadata of a pull request: its title, description
and commit messages. Report only problems with how the change is described,
not with the code itself.

Policy:
{policy}

Use an empty "file" and line 0 for every issue.

{_language_instruction(language)}"""


def build_file_user_prompt(diff: FileDiff) -> str:
    return f"""File: {diff.path}

## Unified Diff
{diff.diff_text}

### Output Format:
Respond with **only** valid JSON matching:

{_ISSUE_SCHEMA}

If there are no issues, return: {{"issues": []}}
Do not return any text outside the JSON block."""


def build_metadata_user_prompt(metadata: PullRequestMetadata) -> str:
    commits = "\n".join(f"- {m}" for m in metadata.commit_messages) or "(none)"
    return f"""## Title
{metadata.title or "(empty)"}

## Description
{metadata.description or "(empty)"}

## Commit Messages
{commits}

### Output Format:
Respond with **only** valid JSON matching:

{_ISSUE_SCHEMA}

If there are no issues, return: {{"issues": []}}
Do not return any text outside the JSON block."""
