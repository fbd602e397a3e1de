from sparrow_routing.services.connectivity import ConnectivityProbe, StaticConnectivityProbe
from sparrow_routing.services.error_classifier import classify_error
from sparrow_routing.services.retry import RetryExecutor, RetryPolicy

__all__ = [
    "ConnectivityProbe",
    "RetryExecutor",
    "RetryPolicy",
    "StaticConnectivityProbe",
    "classify_error",
]
