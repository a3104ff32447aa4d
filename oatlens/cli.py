"""Command line entry point for dumping archives and images."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, TextIO

from .archive_report import ArchiveReport
from .artifact_report import ArtifactReport
from .config import ReportConfig, load_config
from .container import open_container
from .exceptions import FatalReportError, MissingSource
from .logging_config import close_debug_logger, configure_debug_file_logger, setup_logging
from .snapshot import load_snapshot

LOGGER = logging.getLogger(__name__)

EXAMPLES = """\
examples:
  oatlens --image=$ANDROID_PRODUCT_OUT/system/framework/boot.yaml --host-prefix=$ANDROID_PRODUCT_OUT
  oatlens --oat-file=/system/framework/boot.oat --output=/tmp/oatdump.txt
"""


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors with exit status 1."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="oatlens",
        description="Dump the contents of a compiled-code archive or an image snapshot",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--oat-file", type=Path, help="input archive, e.g. /system/framework/boot.oat")
    parser.add_argument("--image", type=Path, help="input image snapshot (YAML)")
    parser.add_argument(
        "--boot-image",
        type=Path,
        help="image snapshot of the boot class path; its objects are walked but not counted",
    )
    parser.add_argument(
        "--host-prefix",
        default=None,
        help="translate target paths to host paths (default: $ANDROID_PRODUCT_OUT)",
    )
    parser.add_argument("--output", type=Path, help="write the report to this file instead of stdout")
    parser.add_argument("--config", type=Path, help="YAML file with report settings")
    parser.add_argument("--no-disassemble", action="store_true", help="omit code dumps")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="console log level",
    )
    parser.add_argument("--log-file", type=Path, help="write a debug trace of the run to this file")
    return parser


def _dump_oat(path: Path, config: ReportConfig, out: TextIO) -> int:
    container = open_container(path)
    ArchiveReport(container, config=config).dump(out)
    return 0


def _dump_image(path: Path, boot: Optional[Path], config: ReportConfig, out: TextIO) -> int:
    snapshot = load_snapshot(path)
    boot_snapshots = [load_snapshot(boot)] if boot is not None else []
    report = ArtifactReport(snapshot, config=config, boot_snapshots=boot_snapshots)
    report.dump(out)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(getattr(logging, args.log_level))

    if args.image is None and args.oat_file is None:
        print("Either --image or --oat-file must be specified", file=sys.stderr)
        return 1
    if args.image is not None and args.oat_file is not None:
        print("Either --image or --oat-file must be specified but not both", file=sys.stderr)
        return 1

    try:
        config = load_config(args.config).with_overrides(
            host_prefix=args.host_prefix,
            disassemble=False if args.no_disassemble else None,
        )
    except (OSError, ValueError) as exc:
        print(f"Invalid configuration {args.config}: {exc}", file=sys.stderr)
        return 1

    out: TextIO = sys.stdout
    handle = None
    if args.output is not None:
        try:
            handle = args.output.open("w", encoding="utf-8")
        except OSError as exc:
            print(f"Failed to open output filename {args.output}: {exc}", file=sys.stderr)
            return 1
        out = handle

    trace_logger = None
    if args.log_file is not None:
        trace_logger = configure_debug_file_logger("oatlens", args.log_file)

    try:
        if args.oat_file is not None:
            return _dump_oat(args.oat_file, config, out)
        return _dump_image(args.image, args.boot_image, config, out)
    except MissingSource as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except FatalReportError as exc:
        LOGGER.error("Report aborted: %s", exc)
        print(f"Report aborted: {exc}", file=sys.stderr)
        return 1
    finally:
        out.flush()
        if handle is not None:
            handle.close()
        if trace_logger is not None:
            close_debug_logger(trace_logger)


if __name__ == "__main__":  # pragma: no cover - CLI wrapper
    raise SystemExit(main())
