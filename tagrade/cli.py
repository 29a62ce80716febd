from __future__ import annotations

# Command-line entry point:
#
#   tagrade ROOT CONFIG OUTPUT_DIR [options]
#
# Step levels: 0 = extract archives only, 1 = also compile, 2 = also run tests
# and write the reports.

import argparse
import logging
import sys
from pathlib import Path

from .config import load_config
from .exceptions import TagradeError
from .settings import SETTINGS
from .services import orchestrator, submissions
from .services.compile_store import CompileStore
from .services.reports import write_reports


logger = logging.getLogger(__name__)

STEP_EXTRACT = 0
STEP_COMPILE = 1
STEP_TEST = 2


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="tagrade", description="Batch grading of Java programming submissions.")
    ap.add_argument("root", type=Path, help="directory holding the downloaded submission folders")
    ap.add_argument("config", type=Path, help="grading configuration (YAML)")
    ap.add_argument("output_dir", type=Path, help="directory for the reports")
    ap.add_argument("-k", "--non-keep-directory", action="store_true", help="compile into one flat directory per student")
    ap.add_argument("-l", "--step-level", type=int, choices=(STEP_EXTRACT, STEP_COMPILE, STEP_TEST), default=STEP_TEST)
    ap.add_argument("-t", "--serial", action="store_true", help="run tests one at a time in plan order")
    ap.add_argument("-m", "--manual-judge", action="store_true", help="prompt for each verdict (requires --serial)")
    ap.add_argument("-c", "--csv", action="store_true", help="write CSV reports instead of XLSX")
    ap.add_argument("-s", "--sjis", action="store_true", help="encode CSV reports as Shift_JIS")
    ap.add_argument("--reuse-compile", action="store_true", help="judge the compile results stored by an earlier run")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, SETTINGS.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def run(args: argparse.Namespace) -> int:
    root: Path = args.root
    if not root.is_dir():
        raise TagradeError(f"root directory not found: {root}")
    config = load_config(args.config)
    options = orchestrator.RunOptions(
        serial=args.serial,
        manual_judge=args.manual_judge,
        keep_original_directory=not args.non_keep_directory,
    )
    workspace = submissions.prepare_workspace(root)
    logger.info("workspace: %s", workspace)
    store = CompileStore(workspace / SETTINGS.db_file_name)
    try:
        if args.reuse_compile:
            names = store.student_names()
            compiled = list(store.iter_compile_results())
            print(f"reusing {len(compiled)} stored compile results", flush=True)
        else:
            store.reset()
            print("extracting submissions", flush=True)
            names = submissions.extract_submissions(root, workspace)
            store.add_students(names)
            if args.step_level == STEP_EXTRACT:
                return 0

            submissions.clean_compile_output(workspace)
            sources = submissions.discover_sources(workspace)
            print(f"compiling {len(sources)} files", flush=True)
            compiled = orchestrator.compile_all(sources, config, options)
            store.add_compile_results(compiled)
            if args.step_level == STEP_COMPILE:
                return 0

        print("running tests", flush=True)
        batch = orchestrator.run_batch([c.source for c in compiled], config, options, compiled=compiled)
        store.add_judge_units(batch.units)
    finally:
        store.close()

    try:
        args.output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise TagradeError(f"cannot create output directory {args.output_dir}: {exc}") from exc
    paths = write_reports(
        batch.results,
        table=batch.table,
        config=config,
        names=names,
        workspace=workspace,
        output_dir=args.output_dir,
        as_csv=args.csv,
        csv_encoding="shift_jis" if args.sjis else "utf-8",
    )
    for path in paths:
        print(f"wrote {path}", flush=True)
    return 0


def main(argv: list[str] | None = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    if args.manual_judge and not args.serial:
        ap.error("--manual-judge requires --serial")
    configure_logging(args.verbose)
    try:
        return run(args)
    except TagradeError as exc:
        print(f"error: {exc}", file=sys.stderr, flush=True)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
