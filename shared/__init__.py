"""
PeLens Shared Module
====================

Configuration, structured logging and console presentation helpers used
by the PeLens decoder front-ends.
"""

from shared.config import PeLensConfig, get_config

__all__ = ["PeLensConfig", "get_config"]
