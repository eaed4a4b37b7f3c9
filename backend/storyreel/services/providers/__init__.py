from storyreel.services.providers.base import (
    CreateResult,
    GenerationResult,
    PollPolicy,
    PollState,
    PollStatus,
    ProviderAdapter,
    ProviderHttp,
    RetryPolicy,
)
from storyreel.services.providers.registry import ProviderRegistry

__all__ = [
    "CreateResult",
    "GenerationResult",
    "PollPolicy",
    "PollState",
    "PollStatus",
    "ProviderAdapter",
    "ProviderHttp",
    "ProviderRegistry",
    "RetryPolicy",
]
