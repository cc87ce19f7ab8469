"""Output channels.

A decision tells the caller where the work goes next: the channel of
the selected provider, the optimized/immediate reply path, or the
error path. The engine never calls a provider while deciding; the
dispatcher only hands finished decisions to whatever capability the
caller registered for a channel.
"""

import logging
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from claxis.routing.catalog import DEEPSEEK_R1, ELEVENLABS, GEMINI_FLASH
from claxis.routing.decision import RoutingDecision
from claxis.timing.optimizer import TimingDecision

logger = logging.getLogger(__name__)


class OutputChannel(str, Enum):
    FAST = "fast"              # gemini_flash
    REASONING = "reasoning"    # deepseek_r1
    VOICE = "voice"            # elevenlabs
    DEFAULT = "default"        # no model selected
    OPTIMIZED = "optimized"    # delayed reply
    IMMEDIATE = "immediate"    # reply now
    ERROR = "error"


MODEL_CHANNELS = {
    GEMINI_FLASH: OutputChannel.FAST,
    DEEPSEEK_R1: OutputChannel.REASONING,
    ELEVENLABS: OutputChannel.VOICE,
}


def channel_for_routing(decision: RoutingDecision) -> OutputChannel:
    if not decision.is_selected:
        return OutputChannel.DEFAULT
    return MODEL_CHANNELS.get(decision.selected_model, OutputChannel.DEFAULT)


def channel_for_timing(decision: TimingDecision) -> OutputChannel:
    return OutputChannel.OPTIMIZED if decision.should_optimize else OutputChannel.IMMEDIATE


@runtime_checkable
class ProviderCapability(Protocol):
    """An external provider (AI, voice, messaging) the caller wires in."""

    async def invoke(self, payload: dict[str, Any]) -> Any: ...


class ChannelDispatcher:
    """Hands decision payloads to the capability registered per channel.

    Usage:
        dispatcher = ChannelDispatcher()
        dispatcher.register(OutputChannel.FAST, gemini_client)
        await dispatcher.dispatch(OutputChannel.FAST, result)
    """

    def __init__(self):
        self._handlers: dict[OutputChannel, ProviderCapability] = {}

    def register(self, channel: OutputChannel, capability: ProviderCapability) -> None:
        self._handlers[channel] = capability

    def unregister(self, channel: OutputChannel) -> None:
        self._handlers.pop(channel, None)

    def has_handler(self, channel: OutputChannel) -> bool:
        return channel in self._handlers

    async def dispatch(self, channel: OutputChannel, payload: dict[str, Any]) -> Any:
        """Invoke the channel's capability. Unwired channels return None."""
        handler = self._handlers.get(channel)
        if handler is None:
            logger.debug(f"No handler registered for channel {channel.value}")
            return None
        return await handler.invoke(payload)
