"""Authorization gate: who may create pools and change configuration."""

from __future__ import annotations

import abc
import enum


class Capability(str, enum.Enum):
    """Capabilities checked before privileged operations."""
    POOL_ADMIN = "pool_admin"        # create_pool, withdraw, clear stuck requests
    CONFIG_ADMIN = "config_admin"    # sink recipient, calculator swaps
    GENERATE = "generate"            # request allocation generation


class AuthorizationGate(abc.ABC):
    """Answers capability queries. The engine never stores roles itself."""

    @abc.abstractmethod
    def is_authorized(self, caller: str, capability: Capability) -> bool:
        """Return True if caller holds capability."""


class RoleGate(AuthorizationGate):
    """In-memory role table.

    Usage:
        gate = RoleGate()
        gate.grant("admin", Capability.POOL_ADMIN)
        gate.is_authorized("admin", Capability.POOL_ADMIN)  # True
    """

    def __init__(self) -> None:
        self._roles: dict[Capability, set[str]] = {c: set() for c in Capability}

    def grant(self, caller: str, *capabilities: Capability) -> None:
        for capability in capabilities or tuple(Capability):
            self._roles[capability].add(caller)

    def revoke(self, caller: str, capability: Capability) -> None:
        self._roles[capability].discard(caller)

    def is_authorized(self, caller: str, capability: Capability) -> bool:
        return caller in self._roles.get(capability, set())
