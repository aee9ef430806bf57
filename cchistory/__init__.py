"""cchistory: ClearCase history reader.

Rebuilds the branch/version graph of ClearCase elements from an
interactive cleartool session, and persists it as a snapshot that later
runs extend incrementally.

- Tool: cleartool protocol client
- Graph: elements, branches, versions, merge links, directory content
- HistoryReader: bulk and point-in-time discovery, deferred fixups
- Snapshot: cycle-free persistence and merging
"""

__version__ = "0.1.0"

# Tool Layer
from .tool import Cleartool, ToolSession, ToolSessionError

# Graph Layer
from .graph import (
    Branch,
    DirectoryVersion,
    Element,
    Snapshot,
    SymLinkElement,
    Version,
)

# Discovery
from .history_reader import HistoryReader, StructuralInconsistencyError

# Persistence & Config
from .snapshot import SnapshotError, SnapshotStore
from .config import ImporterConfig, default_config

__all__ = [
    # Tool
    "Cleartool",
    "ToolSession",
    "ToolSessionError",
    # Graph
    "Branch",
    "DirectoryVersion",
    "Element",
    "Snapshot",
    "SymLinkElement",
    "Version",
    # Discovery
    "HistoryReader",
    "StructuralInconsistencyError",
    # Persistence & Config
    "SnapshotError",
    "SnapshotStore",
    "ImporterConfig",
    "default_config",
]
