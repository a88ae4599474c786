"""Prompt constants for screen analysis."""

from typing import Optional

from .base import VisionPrompt

SYSTEM_PROMPT = """You are an AI assistant analyzing the user's screen.
Your job is to:
1. Describe what you see on the screen
2. Identify any tasks or activities the user appears to be working on
3. Provide helpful suggestions or insights
4. If the user appears to be stuck or confused, offer guidance
5. Be concise but thorough

Always be helpful and proactive in your analysis."""

USER_PROMPT = (
    "Analyze this screenshot and provide helpful insights about what I'm working on. "
    "If you see any issues or ways I could be more productive, let me know."
)

DEFAULT_PROMPT = VisionPrompt(system=SYSTEM_PROMPT, user=USER_PROMPT)


def build_prompt(custom_prompt: Optional[str] = None) -> VisionPrompt:
    """Default prompt pair, with the user half replaced when a custom prompt is set."""
    if custom_prompt and custom_prompt.strip():
        return VisionPrompt(system=SYSTEM_PROMPT, user=custom_prompt.strip())
    return DEFAULT_PROMPT
