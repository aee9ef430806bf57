"""Command-line runner: read ClearCase history into a snapshot.

Usage:
    cchistory --root M:\\view\\vob --elements files.txt --directories dirs.txt --save vob.json
    cchistory --load vob.json --versions new_versions.txt --save vob.json
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import ImporterConfig
from .history_reader import HistoryReader, StructuralInconsistencyError
from .snapshot.store import SnapshotError, SnapshotStore
from .tool.cleartool import Cleartool
from .tool.session import ToolSession, ToolSessionError

logger = logging.getLogger("cchistory")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cchistory",
        description="Read ClearCase element history into a persisted snapshot",
    )
    parser.add_argument("--config", type=Path, help="JSON config file")
    parser.add_argument("--root", help="ClearCase directory to start from")
    parser.add_argument("--elements", type=Path, help="File listing file elements, one per line")
    parser.add_argument("--directories", type=Path, help="File listing directory elements, one per line")
    parser.add_argument("--versions", type=Path, help="File listing version-extended paths, one per line")
    parser.add_argument("--cutoff", help="Ignore versions after this ISO 8601 date (default: now)")
    parser.add_argument("--encoding", help="Encoding of the cleartool streams (default: utf-8)")
    parser.add_argument("--load", type=Path, action="append", default=[], help="Snapshot to load (repeatable)")
    parser.add_argument("--save", type=Path, help="Where to save the resulting snapshot")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = ImporterConfig.load(args.config)
    if args.root:
        config.clearcase_root = args.root
    if args.encoding:
        config.encoding = args.encoding
    if args.cutoff:
        config.cutoff = args.cutoff

    store = SnapshotStore(logger=logger)
    try:
        snapshot = store.load_all(args.load)
        if args.elements or args.directories or args.versions:
            with ToolSession(
                config.command,
                config.prompt,
                startup_timeout=config.startup_timeout,
                encoding=config.encoding,
                logger=logger,
            ) as session:
                reader = HistoryReader(
                    Cleartool(session, logger),
                    cutoff=config.cutoff_date,
                    snapshot=snapshot,
                    root=config.clearcase_root,
                    logger=logger,
                    file_progress=config.progress.files,
                    directory_progress=config.progress.directories,
                    version_progress=config.progress.versions,
                )
                new_versions = reader.read_files(args.elements, args.directories, args.versions)
                snapshot = reader.snapshot
            if new_versions is not None:
                logger.info("%d new versions read", len(new_versions))
        if args.save and snapshot is not None:
            store.save(snapshot, args.save)
    except (StructuralInconsistencyError, SnapshotError, ToolSessionError, ValueError, OSError) as e:
        logger.critical("Exception during import: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
