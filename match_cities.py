"""City linkage script: survey cities -> Census places."""
from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Dict, Optional, Sequence

from linkage.data_loader import ColumnMapping, load_sources, load_targets
from linkage.disambiguation import parse_rules
from linkage.errors import MatchingError
from linkage.matching import SCORERS
from linkage.models import ReconciliationResult
from linkage.normalize import KEY_FUNCTIONS
from linkage.outputs import save_outputs
from linkage.overrides import OverrideTable
from linkage.pipeline import ReconcileConfig, reconcile

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_THRESHOLD = 90.0
DEFAULT_RULES = ["region_code_equal", "region_name_equal"]


def resolve_path(path_str: str) -> Path:
    path = Path(path_str)
    if not path.is_absolute():
        path = BASE_DIR / path
    return path


def setup_logger(log_path: Path, level: int = logging.INFO) -> logging.Logger:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger("city_linkage")
    logger.setLevel(level)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    handler.setFormatter(formatter)
    for old in logger.handlers:
        old.close()
    logger.handlers = [handler]
    return logger


def report_metrics(
    logger: logging.Logger,
    result: ReconciliationResult,
    durations: Dict[str, float],
) -> None:
    logger.info("Linked pairs by provenance: %s", json.dumps(result.provenance_counts(), sort_keys=True))
    logger.info("Residuals by reason: %s", json.dumps(result.residual_counts(), sort_keys=True))
    logger.info("Ambiguous sources: %d", len(result.ambiguous))
    for rule, outcome in result.rule_outcomes.items():
        logger.info(
            "Rule %s on all %d candidates: kept=%d removed=%d uniquely_resolved_sources=%d",
            rule,
            len(result.candidates),
            len(outcome.kept),
            len(outcome.removed),
            len(outcome.resolved_sources),
        )
    for name, duration in durations.items():
        logger.info("Duration %s: %.3fs", name, duration)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Link survey city records to Census places")
    parser.add_argument("--source", required=False, help="Path to source (survey) table")
    parser.add_argument("--target", required=False, help="Path to target (Census place) table")
    parser.add_argument("--out-dir", dest="out_dir", required=False, help="Directory for output CSVs")
    parser.add_argument("--log", required=False, help="Log file path")
    parser.add_argument("--overrides", help="Manual override CSV (label,source_id,target_id,note)")
    parser.add_argument("--source-sheet", dest="source_sheet", help="Source sheet name")
    parser.add_argument("--target-sheet", dest="target_sheet", help="Target sheet name")
    parser.add_argument("--threshold", type=float, default=DEFAULT_THRESHOLD)
    parser.add_argument("--scorer", choices=sorted(SCORERS), default="token_set_ratio")
    parser.add_argument(
        "--rule",
        dest="rules",
        action="append",
        help="Disambiguation rule, repeat for a fallback chain (region_code_equal, region_name_equal, a+b)",
    )
    parser.add_argument("--no-rules", dest="no_rules", action="store_true", help="Link on fuzzy score alone")
    parser.add_argument("--blocking-prefix", dest="blocking_prefix", type=int, default=0)
    parser.add_argument("--workers", type=int, default=1)
    parser.add_argument("--region-code-width", dest="region_code_width", type=int, default=None)
    parser.add_argument("--source-key", dest="source_key", choices=sorted(KEY_FUNCTIONS), default="name")
    parser.add_argument("--target-key", dest="target_key", choices=sorted(KEY_FUNCTIONS), default="place")
    for side in ("source", "target"):
        parser.add_argument(f"--{side}-id-col", dest=f"{side}_id_col", default="id")
        parser.add_argument(f"--{side}-name-col", dest=f"{side}_name_col", default="name")
        parser.add_argument(f"--{side}-region-code-col", dest=f"{side}_region_code_col", default="region_code")
        parser.add_argument(f"--{side}-region-name-col", dest=f"{side}_region_name_col", default="region_name")
    parser.add_argument("--debug", action="store_true", help="Log per-record decisions")
    return parser.parse_args(argv)


def validate_args(args: argparse.Namespace) -> None:
    missing = [name for name in ["source", "target", "out_dir", "log"] if getattr(args, name) is None]
    if missing:
        raise MatchingError(f"Missing required arguments: {', '.join(missing)}")


def column_mapping(args: argparse.Namespace, side: str) -> ColumnMapping:
    return ColumnMapping(
        id_col=getattr(args, f"{side}_id_col"),
        name_col=getattr(args, f"{side}_name_col"),
        region_code_col=getattr(args, f"{side}_region_code_col") or None,
        region_name_col=getattr(args, f"{side}_region_name_col") or None,
    )


def build_config(args: argparse.Namespace) -> ReconcileConfig:
    rule_names = [] if args.no_rules else (args.rules or DEFAULT_RULES)
    return ReconcileConfig(
        threshold=args.threshold,
        scorer=args.scorer,
        rules=tuple(parse_rules(rule_names)),
        blocking_prefix=args.blocking_prefix,
        workers=args.workers,
        region_code_width=args.region_code_width,
        source_key=args.source_key,
        target_key=args.target_key,
    )


def main(argv: Optional[Sequence[str]] = None) -> ReconciliationResult:
    args = parse_args(argv)
    validate_args(args)
    config = build_config(args)
    overrides = OverrideTable.from_csv(resolve_path(args.overrides)) if args.overrides else OverrideTable()
    out_dir = resolve_path(args.out_dir)
    logger = setup_logger(resolve_path(args.log), logging.DEBUG if args.debug else logging.INFO)
    logger.info("Starting linkage with parameters: %s", json.dumps(vars(args), default=str))
    start_time = time.perf_counter()
    sources, source_errors = load_sources(
        resolve_path(args.source), column_mapping(args, "source"), args.source_sheet, logger
    )
    targets, target_errors = load_targets(
        resolve_path(args.target), column_mapping(args, "target"), args.target_sheet, logger
    )
    load_duration = time.perf_counter() - start_time
    logger.info(
        "Loaded %d sources (%d malformed) and %d targets (%d malformed) in %.3fs",
        len(sources),
        len(source_errors),
        len(targets),
        len(target_errors),
        load_duration,
    )
    match_start = time.perf_counter()
    result = reconcile(sources, targets, config, overrides, source_errors, target_errors, logger)
    match_duration = time.perf_counter() - match_start
    save_start = time.perf_counter()
    written = save_outputs(result, sources, targets, out_dir)
    save_duration = time.perf_counter() - save_start
    total_duration = time.perf_counter() - start_time
    report_metrics(
        logger,
        result,
        {"load": load_duration, "reconcile": match_duration, "save": save_duration, "total": total_duration},
    )
    logger.info("Wrote %s", json.dumps({key: str(path) for key, path in written.items()}))
    return result


def cli() -> int:
    try:
        main(sys.argv[1:])
    except MatchingError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(cli())
