"""
Version of the orbit-sdk distribution.

`__version__` is static (PEP 440); `user_agent()` is what HTTP clients send to
nodes and to the remote devnet manager.
"""

from __future__ import annotations

import platform

# Bump this when publishing
__version__ = "0.3.0"


def user_agent(component: str = "orbit-sdk-py") -> str:
    """e.g. 'orbit-sdk-py/0.3.0 (CPython 3.12.1)'."""
    return f"{component}/{__version__} ({platform.python_implementation()} {platform.python_version()})"


__all__ = ["__version__", "user_agent"]
