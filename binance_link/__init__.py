"""binance-link - OAuth (PKCE) client for the Binance account API."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("binance-link")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback for development

__all__ = [
    "__version__",
    "BinanceService",
    "create_service",
    "await_callback",
    "RequestMultiplexer",
    "HostConfig",
    "load_host_config",
]


# Lazy imports to avoid circular dependencies
def __getattr__(name: str) -> object:
    """Lazy import module components."""
    if name in ("BinanceService", "create_service", "await_callback"):
        from .service import BinanceService, await_callback, create_service
        return {
            "BinanceService": BinanceService,
            "create_service": create_service,
            "await_callback": await_callback,
        }[name]
    elif name == "RequestMultiplexer":
        from .multiplexer import RequestMultiplexer
        return RequestMultiplexer
    elif name in ("HostConfig", "load_host_config"):
        from .config import HostConfig, load_host_config
        return {"HostConfig": HostConfig, "load_host_config": load_host_config}[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
