"""
Relay guard package.

Pure checks run before any outbound connection is attempted.
"""

from .safety import Verdict, classify, is_local_host

__all__ = ["Verdict", "classify", "is_local_host"]
