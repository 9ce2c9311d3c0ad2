"""CLI entrypoint: download jmdict-simplified and load it into SQLite."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging

from dotenv import load_dotenv

from jmdictdb.acquisition.extractor import ArchiveExtractor, UnzipCommandExtractor, ZipArchiveExtractor
from jmdictdb.ingestion.stream import DOCUMENT_KINDS
from jmdictdb.pipeline.config import ConfigError, LoaderSettings
from jmdictdb.pipeline.orchestrator import DictionaryPipeline


LOGGER = logging.getLogger(__name__)


def _build_parser(defaults: LoaderSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Download jmdict-simplified and use it to populate an SQLite database.",
    )
    parser.add_argument(
        "-i",
        "--input",
        default=str(defaults.input_path),
        help="The input JSON file for jmdict-simplified",
    )
    parser.add_argument(
        "-d",
        "--download-url",
        default=defaults.download_url,
        help="The download URL for jmdict-simplified, used when --input is missing",
    )
    parser.add_argument(
        "--no-download",
        action="store_true",
        help="Never download; fail when --input is missing",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=str(defaults.output_path),
        help="The output SQLite database filepath",
    )
    parser.add_argument(
        "--kind",
        default=defaults.document_kind,
        choices=sorted(DOCUMENT_KINDS),
        help="Document kind of the input file",
    )
    parser.add_argument(
        "--max-records",
        type=int,
        default=defaults.max_records,
        help="Stop after this many records (default: no limit)",
    )
    parser.add_argument(
        "--extractor",
        default="zip",
        choices=["zip", "unzip"],
        help="Archive backend: Python zipfile or the external unzip tool",
    )
    parser.add_argument("--progress", action="store_true", help="Show a download progress bar")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...)")
    return parser


def _build_extractor(name: str) -> ArchiveExtractor:
    if name == "unzip":
        return UnzipCommandExtractor()
    return ZipArchiveExtractor()


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    try:
        defaults = LoaderSettings.from_env()
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    args = _build_parser(defaults).parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        settings = dataclasses.replace(
            defaults,
            input_path=args.input,
            output_path=args.output,
            download_url=None if args.no_download else args.download_url,
            document_kind=args.kind,
            max_records=args.max_records,
            show_progress=bool(args.progress),
        )
    except ConfigError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    LOGGER.info("Input: %s", settings.input_path)
    LOGGER.info("Output: %s", settings.output_path)

    pipeline = DictionaryPipeline(settings, extractor=_build_extractor(args.extractor))
    result = pipeline.run()

    payload = {
        "input": str(settings.input_path),
        "output": str(settings.output_path),
        **result.to_dict(),
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
