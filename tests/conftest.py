import asyncio
import pathlib
import sys
from typing import Optional

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from lesson_audio.services.tts.errors import TTSServiceError  # noqa: E402


class FakeTTSService:
    """In-memory stand-in for the Resemble client.

    Records every request in issue order plus start/end events so tests can
    check sequencing. Individual texts can be made to fail or to block on a
    gate until the test releases them.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.events: list[tuple[str, str]] = []
        self.fail_on: dict[str, int] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.empty_on: set[str] = set()
        self.chunks_per_call = 2

    def gate(self, text: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[text] = event
        return event

    def fail(self, text: str, status_code: int = 503) -> None:
        self.fail_on[text] = status_code

    def count(self, text: str) -> int:
        return self.calls.count(text)

    def started(self, text: str) -> bool:
        return ("start", text) in self.events

    def position(self, kind: str, text: str) -> int:
        return self.events.index((kind, text))

    async def stream_synthesize(
        self,
        text: str,
        *,
        sample_rate: Optional[int] = None,
        precision: Optional[str] = None,
    ):
        self.calls.append(text)
        self.events.append(("start", text))
        try:
            gate = self.gates.get(text)
            if gate is not None:
                await gate.wait()
            if text in self.fail_on:
                raise TTSServiceError(
                    self.fail_on[text], "Service Unavailable", "simulated outage"
                )
            if text in self.empty_on:
                return
            for part in range(self.chunks_per_call):
                yield f"RIFF:{text}:{part}".encode()
        finally:
            self.events.append(("end", text))


@pytest.fixture
def fake_tts() -> FakeTTSService:
    return FakeTTSService()
