from imapstream.core.logging import configure_logging, sanitize_for_log
from imapstream.core.network import NetworkStatus, check_network
from imapstream.core.registry import SessionRegistry, default_registry

__all__ = [
    "NetworkStatus",
    "SessionRegistry",
    "check_network",
    "configure_logging",
    "default_registry",
    "sanitize_for_log",
]
