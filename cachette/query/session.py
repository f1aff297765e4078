"""Multi-turn chat session over one model reference.

History starts with the system turn and grows by one user + one assistant
turn per successful send. A failed send leaves history untouched.
"""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, List, Type, TypeVar

from cachette import metrics
from cachette.llm.exceptions import QueryFailed
from cachette.llm.types import ChatMessage

from .orchestrator import QueryOrchestrator
from .structured import decode_structured, schema_instruction

T = TypeVar("T")


class ChatSession:
    def __init__(
        self,
        orchestrator: QueryOrchestrator,
        reference: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        token_budget: int | None = None,
        download_destination: str | Path | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.reference = reference
        self.system_prompt = system_prompt or orchestrator.default_system_prompt
        self.temperature = temperature
        self.token_budget = token_budget
        self.download_destination = download_destination
        self._messages: List[ChatMessage] = [
            ChatMessage("system", self.system_prompt)
        ]
        self._lock = threading.Lock()

    @property
    def history(self) -> List[ChatMessage]:
        with self._lock:
            return list(self._messages)

    def reset(self) -> None:
        with self._lock:
            self._messages = [ChatMessage("system", self.system_prompt)]

    def _turn(
        self,
        content: str,
        cancel: threading.Event | None,
        temperature: float | None,
        structured: bool = False,
    ) -> str:
        with self._lock:
            if cancel is not None and cancel.is_set():
                raise QueryFailed("cancelled")
            self._messages.append(ChatMessage("user", content))
            try:
                result = self.orchestrator.complete(
                    list(self._messages),
                    self.reference,
                    temperature=temperature,
                    token_budget=self.token_budget,
                    download_destination=self.download_destination,
                    structured=structured,
                )
            except BaseException:
                self._messages.pop()
                raise
            self._messages.append(ChatMessage("assistant", result.response))
        metrics.inc("session_turns_total", {"structured": str(structured).lower()})
        return result.response

    def send(self, prompt: str, cancel: threading.Event | None = None) -> str:
        return self._turn(prompt, cancel, self.temperature)

    def send_structured(
        self,
        prompt: str,
        schema: Type[T] | Any,
        cancel: threading.Event | None = None,
        temperature: float | None = None,
    ) -> T:
        """Send a turn that must answer as JSON matching `schema`.

        The JSON-only instruction rides on the user turn since the session's
        system prompt is fixed. A decode failure raises ParsingFailed; the
        exchange stays in history.
        """
        content = f"{prompt}\n\n{schema_instruction(schema)}"
        if temperature is None:
            temperature = self.temperature
        text = self._turn(content, cancel, temperature, structured=True)
        return decode_structured(text, schema)


__all__ = ["ChatSession"]
