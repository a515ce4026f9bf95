"""Prompt text sent to the browser agent."""

from __future__ import annotations

FUTURE_ACTION_NOTE = (
    "IMPORTANT NOTE FOR BROWSER AGENT: After you complete this task, the following "
    'action will be performed with your output: "{result_action}"\n\n'
    "This is a FUTURE action that you should NOT attempt to perform yourself. "
    "However, please ensure your output contains all necessary information to "
    "support this follow-up action. For example, if the follow-up involves sending "
    "specific data via email, make sure that data is clearly present in your output."
)


def build_task_prompt(instructions: str, result_action: str | None = None) -> str:
    """Instructions, plus a note about the follow-up action when one is set."""
    action = (result_action or "").strip()
    if not action:
        return instructions
    return f"{instructions}\n\n{FUTURE_ACTION_NOTE.format(result_action=action)}"
