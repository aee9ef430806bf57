"""Tool Layer - protocol client for the interactive cleartool process."""

from .cleartool import Cleartool, CommandRunner
from .parsers import DirectoryEntry, VersionMetadata
from .session import PromptStreamParser, ToolSession, ToolSessionError

__all__ = [
    "Cleartool",
    "CommandRunner",
    "DirectoryEntry",
    "VersionMetadata",
    "PromptStreamParser",
    "ToolSession",
    "ToolSessionError",
]
