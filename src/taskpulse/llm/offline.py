# src/taskpulse/llm/offline.py

from __future__ import annotations


class OfflineMessageGenerator:
    """
    Offline deterministic generator used when no external API is configured.

    Daily checks still go out, just with a fixed friendly text.
    """

    def __init__(self, text: str | None = None) -> None:
        self._text = text or (
            "Good morning! How are your plans for today looking? "
            "Tell me what's on your mind and I'll help you sort it out."
        )

    def generate_personalized_message(self, owner_id: str, prompt_hint: str) -> str:
        return self._text
