"""
hostscale Utils Module

Command execution, HTTP, caching and secret helpers shared by the
detection, scaling and database layers.
"""

from .commands import (
    CommandRunner,
    CommandResult,
    LocalCommandRunner,
    SshCommandRunner,
    ServerRef,
)
from .network import HTTPClient, new_session, tcp_reachable
from .caching import TTLCache
from .secrets import SecretBox

__all__ = [
    "CommandRunner",
    "CommandResult",
    "LocalCommandRunner",
    "SshCommandRunner",
    "ServerRef",
    "HTTPClient",
    "new_session",
    "tcp_reachable",
    "TTLCache",
    "SecretBox",
]
