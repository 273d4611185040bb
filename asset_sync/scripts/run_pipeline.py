import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from asset_sync.core.config import load_settings
from asset_sync.core.errors import ConfigurationError
from asset_sync.services.pipeline import run_pipeline

logger = logging.getLogger("asset_sync")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="asset-sync",
        description=(
            "Optimize images under images/ and images-webp/ folders, write "
            "per-folder manifests, commit them and mirror the folders to "
            "object storage."
        ),
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=Path("."),
        help="Repository root to scan (default: current directory)",
    )
    parser.add_argument(
        "--skip-commit",
        action="store_true",
        help="Leave regenerated files uncommitted",
    )
    parser.add_argument(
        "--skip-sync",
        action="store_true",
        help="Do not mirror folders to object storage",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


async def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(root=args.root)
    except ConfigurationError as e:
        logger.warning("%s", e)
        return 0

    report = await run_pipeline(
        settings, commit=not args.skip_commit, sync=not args.skip_sync
    )
    return report.exit_code


def cli():
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
