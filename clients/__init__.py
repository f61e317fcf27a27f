from .reasoning import (
    ReasoningClient,
    ReasoningError,
    get_reasoning_client,
    coerce_shift,
    split_shift_block,
)

__all__ = [
    "ReasoningClient",
    "ReasoningError",
    "get_reasoning_client",
    "coerce_shift",
    "split_shift_block",
]
