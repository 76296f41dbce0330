"""
Command line entry point.

    sflm paths SURVEY          traced paths and completion-time estimates
    sflm lint SURVEY           logic issues (dangling/forward refs, loops)
    sflm export-csv SURVEY     CSV export to stdout (or --output)
    sflm import-csv CSV        CSV import, written as YAML/JSON (or stdout)

SURVEY files are YAML (.yaml/.yml) or JSON (.json).
"""
from __future__ import annotations

import argparse
import logging
import sys
from logging.config import dictConfig
from typing import List, Optional

import yaml

from sflm.analyzer import analyze_survey
from sflm.backends.csv_export import generate_csv
from sflm.backends.text_export import generate_text_copy
from sflm.config import load_settings
from sflm.csv_parser import parse_csv_file
from sflm.errors import SflmError
from sflm.serialization import load_survey, save_survey, survey_to_yaml
from sflm.validator import validate_logic

logger = logging.getLogger(__name__)

_DICT_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "default",
            "stream": "ext://sys.stderr",
        }
    },
    "root": {"level": "WARNING", "handlers": ["console"]},
}


def configure_logging(verbose: bool = False) -> None:
    """Attach one stderr handler to the root logger (once)."""
    root = logging.getLogger()
    if not root.handlers:
        dictConfig(_DICT_CONFIG)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _cmd_paths(args) -> int:
    survey = load_survey(args.survey)
    report = analyze_survey(survey, load_settings(args.config))
    bids = {b.id: b.bid or b.id for b in survey.blocks}

    print(f"Survey: {report.survey_title}")
    print(f"  Blocks: {report.total_blocks}  Questions: {report.total_questions}  "
          f"Required: {report.required_questions}  Pages: {report.total_pages}")
    print(f"  Completion time: {report.completion_time}")
    print()
    for path in report.paths:
        print(f"{path.name}: {' -> '.join(bids.get(b, b) for b in path.block_ids)}")
        print(f"  {path.question_count} questions, {path.page_count} pages, {path.completion_time}")
    for warning in report.warnings:
        print(f"WARNING: {warning}")
    return 0


def _cmd_lint(args) -> int:
    survey = load_survey(args.survey)
    issues = validate_logic(survey)
    for issue in issues:
        question = survey.get_question(issue.question_id)
        label = question.qid if question is not None else issue.question_id
        print(f"{label} [{issue.type}] {issue.message}")
    if not issues:
        print("No logic issues found.")
    return 1 if issues else 0


def _cmd_export_csv(args) -> int:
    survey = load_survey(args.survey)
    content = generate_text_copy(survey) if args.text else generate_csv(survey)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(content)
    else:
        sys.stdout.write(content)
    return 0


def _cmd_import_csv(args) -> int:
    survey = parse_csv_file(args.csv, survey_title=args.title)
    if args.output:
        save_survey(survey, args.output)
    else:
        sys.stdout.write(survey_to_yaml(survey))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sflm", description="Survey flow logic tools")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", help="Settings YAML file (defaults to $SFLM_CONFIG)")
    sub = parser.add_subparsers(dest="command", required=True)

    paths = sub.add_parser("paths", help="Trace paths and estimate completion time")
    paths.add_argument("survey", help="Survey YAML/JSON file")
    paths.set_defaults(func=_cmd_paths)

    lint = sub.add_parser("lint", help="Report logic issues")
    lint.add_argument("survey", help="Survey YAML/JSON file")
    lint.set_defaults(func=_cmd_lint)

    export = sub.add_parser("export-csv", help="Export a survey as CSV")
    export.add_argument("survey", help="Survey YAML/JSON file")
    export.add_argument("-o", "--output", help="Output file (default: stdout)")
    export.add_argument("--text", action="store_true", help="Write the plain-text survey copy instead")
    export.set_defaults(func=_cmd_export_csv)

    imp = sub.add_parser("import-csv", help="Import a survey from CSV")
    imp.add_argument("csv", help="CSV file")
    imp.add_argument("-o", "--output", help="Output .yaml/.json file (default: YAML to stdout)")
    imp.add_argument("--title", help="Survey title (default: file name)")
    imp.set_defaults(func=_cmd_import_csv)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        return args.func(args)
    except (OSError, ValueError, yaml.YAMLError, SflmError) as e:
        logger.error("%s failed: %s", args.command, e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
