from pulse_core.utils.clock import Clock, system_clock
from pulse_core.utils.retry import RetryConfig, retry_call

__all__ = [
    "Clock",
    "RetryConfig",
    "retry_call",
    "system_clock",
]
