"""Policy configuration."""

from treasury_options.policy.resolver import PolicyResolver

__all__ = ["PolicyResolver"]
