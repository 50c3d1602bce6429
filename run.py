"""CLI entrypoint."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv as _load_dotenv

from sado_poi import config
from sado_poi.config import SheetsConfig, load_sheets_config
from sado_poi.errors import ConfigError
from sado_poi.http import HttpClient, RequestMetrics
from sado_poi.reporting import (
    build_summary,
    ensure_dir,
    write_pois_csv,
    write_pois_json,
    write_summary,
)
from sado_poi.search import filter_pois
from sado_poi.sources import CsvSource, SheetsSource, parse_area_assignments
from sado_poi.store import PoiStore, load_pois


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    _load_dotenv(dotenv_path=env_path, override=False)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest Sado POIs from area sheets")
    parser.add_argument(
        "--areas",
        nargs="+",
        default=None,
        help="Area ids to load (default: every configured area, or the --csv areas)",
    )
    parser.add_argument(
        "--csv",
        nargs="+",
        default=None,
        metavar="AREA=PATH",
        help="Read areas from local CSV exports instead of the Sheets API",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to sources_config.json")
    parser.add_argument("--output-dir", type=str, default="out")
    parser.add_argument("--search", type=str, default=None, help="Keep POIs matching this text")
    parser.add_argument(
        "--category",
        action="append",
        default=None,
        help="Keep POIs in this category (repeatable)",
    )
    parser.add_argument("--include-closed", action="store_true", help="Keep closed POIs in the output")
    parser.add_argument("--preflight", action="store_true", help="Validate configuration only")
    return parser.parse_args(argv)


def run_preflight(cfg: SheetsConfig) -> int:
    print("Preflight (redacted):")
    print(f"- {config.ENV_API_KEY} length: {len(cfg.api_key)}")
    print(f"- {config.ENV_SPREADSHEET_ID} length: {len(cfg.spreadsheet_id)}")
    print(f"- areas: {', '.join(cfg.areas)}")
    print(
        "- retry: max_retries={max_retries}, delay={delay}s, backoff={backoff}, timeout={timeout}s".format(
            max_retries=cfg.max_retries,
            delay=cfg.retry_delay,
            backoff=cfg.backoff,
            timeout=cfg.request_timeout,
        )
    )
    problems = cfg.problems(require_credentials=True)
    for problem in problems:
        print(f"- problem: {problem}")
    print("Preflight: PASS" if not problems else "Preflight: FAIL")
    return 0 if not problems else 1


def _select_areas(args: argparse.Namespace, csv_areas: List[str], cfg: SheetsConfig) -> List[str]:
    if args.areas:
        return list(args.areas)
    if csv_areas:
        return csv_areas
    return list(cfg.areas)


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_env()
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        cfg = load_sheets_config(args.config)
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 1

    if args.preflight:
        return run_preflight(cfg)

    metrics = RequestMetrics()
    http_client: Optional[HttpClient] = None
    try:
        if args.csv:
            assignments = parse_area_assignments(args.csv)
            source = CsvSource.from_paths(dict(assignments))
            csv_areas = [area for area, _ in assignments]
            cfg.validate(require_credentials=False)
        else:
            csv_areas = []
            cfg.validate(require_credentials=True)
            http_client = HttpClient(cfg.api_key, timeout=cfg.request_timeout, metrics=metrics)
            source = SheetsSource(cfg, http_client)
        areas = _select_areas(args, csv_areas, cfg)
        store = PoiStore(source, cfg, metrics=metrics)
        result = load_pois(store, areas)
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        for problem in exc.problems:
            print(f"- {problem}", file=sys.stderr)
        return 1
    finally:
        if http_client is not None:
            http_client.close()

    pois = filter_pois(
        result.data,
        categories=args.category,
        include_closed=args.include_closed,
        text=args.search,
    )

    out_dir = args.output_dir
    ensure_dir(out_dir)
    write_pois_json(os.path.join(out_dir, "pois.json"), pois)
    write_pois_csv(os.path.join(out_dir, "pois.csv"), pois)
    summary = build_summary(result, areas, metrics.as_dict())
    summary["poi_count_written"] = len(pois)
    write_summary(os.path.join(out_dir, "summary.json"), summary)

    print(f"Loaded {len(result.data)} POIs from {len(areas) - len(result.errors)}/{len(areas)} areas")
    print(f"Wrote {len(pois)} POIs to {out_dir}/pois.json and {out_dir}/pois.csv")
    for error in result.errors:
        print(f"Area {error.area} failed ({error.kind}): {error.message}", file=sys.stderr)
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
