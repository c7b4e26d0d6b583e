"""
Request/response access to the feed
"""

from .command_client import CommandClient, CommandResult, CommandError

__all__ = ["CommandClient", "CommandResult", "CommandError"]
