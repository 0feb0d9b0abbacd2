"""Runtime settings for NEPSE-Pulse.

Exposes the environment-backed GlobalConfig and its cached accessor.
"""

from config.settings import GlobalConfig, get_config

__all__ = ["GlobalConfig", "get_config"]
