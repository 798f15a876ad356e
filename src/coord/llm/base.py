"""The generation contract shared by providers and wrappers."""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from coord.llm.stream import StreamContent
from coord.types import ChatContext, Content


@runtime_checkable
class Model(Protocol):
    """Protocol every generation backend implements.

    Wrappers such as the soft tool-call emulator implement it too, so
    models can be stacked.
    """

    def generate_stream(
        self,
        chat: ChatContext | None,
        input: Content,
        *,
        cancel: asyncio.Event | None = None,
    ) -> StreamContent:
        """Start a generation and return its stream without waiting."""
        ...

    def name(self) -> str:
        ...

    async def close(self) -> None:
        ...
