"""Command line interface: pull an image's root filesystem or import it as a distribution."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .core.types import RegistryConfig
from .exceptions import RegistryError
from .logging_utils import configure_logging
from .puller import pull_rootfs, working_directory
from .tar.combiner import INSTALL_ARCHIVE
from .utils.command import format_argv, run_command
from .utils.security import SecurityLogger
from .utils.validator import ensure_within_base, validate_distro_name, validate_image_name

logger = logging.getLogger(__name__)

DEFAULT_IMPORT_COMMAND = "wsl.exe"


def default_install_root() -> str:
    base = os.getenv("LOCALAPPDATA") or str(Path.home() / ".local" / "share")
    return str(Path(base) / "registry-rootfs")


def build_config(args: argparse.Namespace) -> RegistryConfig:
    config = RegistryConfig.from_env()
    if getattr(args, "tar_command", None):
        config.tar_command = args.tar_command
    if getattr(args, "no_verify", False):
        config.verify_digests = False
    return config


async def _pull(args: argparse.Namespace, config: RegistryConfig, audit: SecurityLogger) -> int:
    validate_image_name(args.image, audit)
    print(f"Downloading {args.image}...")
    archive = await pull_rootfs(
        args.image, args.output, config, audit, archive_name=args.archive_name
    )
    print(f"Root filesystem written to {archive}")
    return 0


async def _import(
    args: argparse.Namespace, config: RegistryConfig, audit: SecurityLogger
) -> int:
    validate_distro_name(args.name, audit)
    validate_image_name(args.image, audit)

    install_dir = ensure_within_base(Path(args.output) / args.name, args.output, audit)

    with working_directory(config.temp_root) as staging:
        print(f"Downloading {args.image}...")
        archive = await pull_rootfs(args.image, staging, config, audit)

        install_dir.mkdir(parents=True, exist_ok=True)
        argv = [args.import_command, "--import", args.name, str(install_dir), str(archive)]
        audit.log_command(format_argv(argv), subject=args.name)
        print("Registering distribution...")
        try:
            await run_command(argv)
        except (OSError, RuntimeError) as e:
            logger.error("Import command failed: %s", e)
            print(f"Error: importing {args.name} failed: {e}", file=sys.stderr)
            return 1

    print(f"Successfully created {args.name}!")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="registry-rootfs",
        description="Turn a container image into a root filesystem archive",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    p.add_argument("--log-file", default=None, help="Also write logs to this file")

    sub = p.add_subparsers(dest="command", required=True)

    pull = sub.add_parser("pull", help="Download an image into a single rootfs archive")
    pull.add_argument("image", help="Image reference, e.g. library/alpine:3.18")
    pull.add_argument("-o", "--output", default=".", help="Directory for the archive")
    pull.add_argument(
        "--archive-name", default=INSTALL_ARCHIVE, help="Archive file name"
    )

    imp = sub.add_parser("import", help="Pull an image and import it as a distribution")
    imp.add_argument("--name", required=True, help="Name of the new distribution")
    imp.add_argument("--image", required=True, help="Image to base the distribution on")
    imp.add_argument(
        "--output", default=default_install_root(), help="Where to install the distribution"
    )
    imp.add_argument(
        "--import-command",
        default=DEFAULT_IMPORT_COMMAND,
        help="Program invoked as '<cmd> --import <name> <dir> <archive>'",
    )

    for sp in (pull, imp):
        sp.add_argument("--tar-command", default=None, help="External tar used to combine layers")
        sp.add_argument(
            "--no-verify", action="store_true", help="Skip blob digest verification"
        )

    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level.upper(), log_file=args.log_file)

    handler = _pull if args.command == "pull" else _import

    try:
        config = build_config(args)
        audit = SecurityLogger(config.security_log_path)
        return asyncio.run(handler(args, config, audit))
    except RegistryError as e:
        logger.debug("Pull failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        logger.debug("Filesystem error", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Aborted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
