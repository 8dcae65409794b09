from __future__ import annotations

import pytest


class StubJudgeClient:
    """Deterministic judge: returns ``reply`` (or raises it) and records prompts."""

    def __init__(self, reply: str | Exception) -> None:
        self.reply = reply
        self.prompts: list[str] = []
        self.max_tokens: list[int | None] = []

    def complete(self, prompt: str, *, max_tokens: int | None = None) -> str:
        self.prompts.append(prompt)
        self.max_tokens.append(max_tokens)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


@pytest.fixture
def stub_judge():
    return StubJudgeClient
