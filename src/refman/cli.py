#!/usr/bin/env python3
"""
Refman CLI
==========

Command-line interface for managing reference datasets.

Usage:
    refman init --title "My project"
    refman register hg38 --fasta https://host/hg38.fa --gtf https://host/hg38.gtf
    refman list
    refman list hg38
    refman download hg38 --dest references/
    refman download
    refman remove hg38
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import RefmanConfig
from .errors import RefmanError
from .fetcher import Fetcher
from .models import Dataset, FileFormat
from .orchestrator import DownloadOrchestrator, SlotStatus
from .registry import Registry, RegistryStore, slot_summary

logger = logging.getLogger(__name__)

INFO = """\
refman (v{version})
------------------------------------------------------------
`refman` is a simple command-line tool for managing biological reference datasets often
used in bioinformatics. These datasets may include raw sequence files, files encoding
annotations on those sequences, etc. `refman` makes it easier to manage and download
these kinds of files globally on the user's machine, or on a per-project basis. It
uses a human-readable YAML file to track which files it's managing, which can be shared
between users to aid scientific reproducibility.
""".format(version=__version__)


def setup_logging(verbosity: int = 0) -> None:
    """Configure logging from the -v/-q count."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    elif verbosity < 0:
        level = logging.ERROR
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def abbreviate(text: str, max_chars: int = 20, head_chars: int = 8, tail_chars: int = 25) -> str:
    """Shorten long URLs for table display."""
    if len(text) <= max_chars:
        return text
    return f"{text[:head_chars]}...{text[-tail_chars:]}"


def format_table(registry: Registry) -> str:
    """Render all datasets as a fixed-width table."""
    header = ["Label"] + [fmt.display_name for fmt in FileFormat]
    rows = [header]
    for dataset in registry.datasets:
        urls = slot_summary(dataset)
        rows.append(
            [dataset.label] + [abbreviate(urls[fmt.value] or "") for fmt in FileFormat]
        )

    widths = [max(len(row[i]) for row in rows) for i in range(len(header))]
    separator = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
    lines = [separator]
    for index, row in enumerate(rows):
        lines.append("| " + " | ".join(cell.ljust(w) for cell, w in zip(row, widths)) + " |")
        if index == 0:
            lines.append(separator)
    lines.append(separator)
    return "\n".join(lines)


def format_dataset(dataset: Dataset) -> str:
    """Render one dataset with the full download state of every slot."""
    title = f"URLs registered for {dataset.label}:"
    lines = [title, "-" * len(title)]
    for fmt in FileFormat:
        state = dataset.get_slot(fmt)
        lines.append(f" - {fmt.display_name}: {state if state is not None else 'None'}")
    return "\n".join(lines)


def open_store(args, config: RefmanConfig) -> RegistryStore:
    path = config.resolve_registry_path(args.registry, args.global_registry)
    logger.debug(f"Using registry at {path}")
    return RegistryStore(path)


# =============================================================================
# Commands
# =============================================================================

def cmd_init(args, config: RefmanConfig) -> int:
    """Create an empty registry."""
    store = open_store(args, config)
    existed = store.exists()
    store.init(title=args.title, description=args.description, is_global=args.global_registry)
    if existed:
        print(f"A refman registry already exists at {store.path}")
    else:
        print(f"✓ Initialized refman registry at {store.path}")
    return 0


def cmd_register(args, config: RefmanConfig) -> int:
    """Register (or update) a dataset."""
    dataset = Dataset.create(
        args.label,
        fasta=args.fasta,
        genbank=args.genbank,
        gfa=args.gfa,
        gff=args.gff,
        gtf=args.gtf,
        bed=args.bed,
    )

    if not args.no_check:
        fetcher = Fetcher(settings=config.download)
        try:
            for url in dataset.urls():
                fetcher.check_url(url)
        finally:
            fetcher.close()

    store = open_store(args, config)
    registry = store.load()
    if registry.title is None and not registry.datasets:
        registry.is_global = args.global_registry
    registry.register(dataset)
    store.save(registry)

    files = ", ".join(fmt.value for fmt, _ in dataset.slots())
    print(f"✓ Registered {files} for '{args.label}' in {store.path}")
    return 0


def cmd_remove(args, config: RefmanConfig) -> int:
    """Remove a dataset."""
    store = open_store(args, config)
    registry = store.load()
    registry.remove(args.label)
    store.save(registry)
    print(f"✓ Removed '{args.label}' from {store.path}")
    return 0


def cmd_list(args, config: RefmanConfig) -> int:
    """List registered datasets."""
    store = open_store(args, config)
    registry = store.load()

    if args.label:
        print(format_dataset(registry.get_dataset(args.label)))
        return 0

    if registry.title:
        print(f"Showing available data registered for {registry.title}:")
    if not registry.datasets:
        print("No datasets registered yet. Add one with `refman register`.")
        return 0
    print(format_table(registry))
    return 0


def cmd_download(args, config: RefmanConfig) -> int:
    """Download and validate registered datasets."""
    store = open_store(args, config)
    registry = store.load()
    destination = Path(args.dest) if args.dest else Path(".")

    def report(label: str, fmt: FileFormat, status: SlotStatus, done: int, total: int) -> None:
        mark = {"fetched": "✓", "not_found": "?", "failed": "✗"}[status.value]
        print(f"  [{done}/{total}] {mark} {label} ({fmt.display_name})")

    with DownloadOrchestrator(config=config, progress_callback=report) as orchestrator:
        result = orchestrator.sync(registry, label=args.label, target_dir=destination)

    if result.updated:
        store.save(result.registry)
    else:
        logger.info(f"No dataset changed; leaving {store.path} untouched")
    print(result.summary())

    if args.label is not None and args.label in result.failed:
        return 1
    return 0


# =============================================================================
# Parser
# =============================================================================

def _add_registry_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-r", "--registry", type=Path, default=None,
                        help="Directory holding the refman.yaml registry")
    parser.add_argument("-g", "--global", dest="global_registry", action="store_true",
                        help="Use the global registry under $REFMAN_HOME or ~/.refman")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="refman",
        description=INFO,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"refman {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase logging verbosity (-v info, -vv debug)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors")
    parser.add_argument("-c", "--config", type=Path, default=None,
                        help="YAML configuration file")

    subparsers = parser.add_subparsers(dest="command", title="commands")

    init_parser = subparsers.add_parser(
        "init", aliases=["i", "new"],
        help="Initialize a registry without registering any datasets",
    )
    init_parser.add_argument("-t", "--title", default=None)
    init_parser.add_argument("-d", "--description", default=None)
    _add_registry_args(init_parser)
    init_parser.set_defaults(func=cmd_init)

    register_parser = subparsers.add_parser(
        "register", aliases=["r", "reg"],
        help="Register a new file or set of files with a given dataset label",
    )
    register_parser.add_argument("label")
    for fmt in FileFormat:
        register_parser.add_argument(f"--{fmt.value}", default=None,
                                     help=f"URL of the {fmt.display_name} file")
    register_parser.add_argument("--no-check", action="store_true",
                                 help="Skip checking that URLs are reachable")
    _add_registry_args(register_parser)
    register_parser.set_defaults(func=cmd_register)

    remove_parser = subparsers.add_parser(
        "remove", aliases=["rm"],
        help="Remove the files associated with a given dataset label",
    )
    remove_parser.add_argument("label")
    _add_registry_args(remove_parser)
    remove_parser.set_defaults(func=cmd_remove)

    list_parser = subparsers.add_parser(
        "list", aliases=["l"],
        help="List all previously registered reference datasets",
    )
    list_parser.add_argument("label", nargs="?", default=None)
    _add_registry_args(list_parser)
    list_parser.set_defaults(func=cmd_list)

    download_parser = subparsers.add_parser(
        "download", aliases=["d", "dl", "get", "fetch"],
        help="Download one or all registered reference datasets",
    )
    download_parser.add_argument("label", nargs="?", default=None,
                                 help="Dataset label (default: every dataset)")
    download_parser.add_argument("-d", "--dest", type=Path, default=None,
                                 help="Destination directory (default: current directory)")
    _add_registry_args(download_parser)
    download_parser.set_defaults(func=cmd_download)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(-1 if args.quiet else args.verbose)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = RefmanConfig.load(args.config)
        return args.func(args, config)
    except KeyboardInterrupt:
        print("\nAborted.", file=sys.stderr)
        return 1
    except RefmanError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"✗ {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
