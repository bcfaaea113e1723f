"""Batch dispatch module: the background loop and its retry schedule."""

from .dispatch_loop import Batch, DispatchLoop, LoopState
from .retry import BatchDeliverer, RetryPolicy, RetryState

__all__ = ["DispatchLoop", "LoopState", "Batch", "BatchDeliverer", "RetryPolicy", "RetryState"]
