"""
streamfold - Live Provider Tests

Streams one short completion from the provider configured in the
environment (see ProviderConfig.from_env). Skipped unless
RUN_INTEGRATION=1.
"""

import pytest

from streamfold.adapters import get_adapter
from streamfold.core.config import ProviderConfig
from streamfold.core.models import ChatCompletionRequest
from streamfold.streaming.projector import ErrorEvent, FinishedEvent, TextEvent


@pytest.mark.integration
class TestLiveProvider:
    """Round trip against a real endpoint."""

    @pytest.mark.asyncio
    async def test_stream_short_reply(self):
        """A short prompt streams text and ends with exactly one Finished."""
        adapter = get_adapter(ProviderConfig.from_env())
        try:
            response = await adapter.generate(ChatCompletionRequest(
                model="",
                prompt="Say hi in one word.",
                max_tokens=16,
            ))
            events = [event async for event in response.stream()]
        finally:
            await adapter.close()

        assert not any(isinstance(e, ErrorEvent) for e in events)
        assert any(isinstance(e, TextEvent) for e in events)
        assert [e for e in events if isinstance(e, FinishedEvent)] == [events[-1]]
