from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, ImportConfig, load_config, resolve_user_settings
from ..db.pg_store import PostgresStore, apply_schema
from ..db.store import InMemoryStore, ScheduleStore, StoreError
from ..excel.reader import UnsupportedFormatError, compute_file_hash, read_schedule_path
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import log_summary, set_debug, setup_logging
from ..models.header_mapping import HeaderMapping
from ..models.row_data import RawRow
from ..services.analytics import summarize_entries
from ..services.errors import DuplicateFileError, ImportProcessingError
from ..services.header_detection import detect_headers
from ..services.itinerary import partition_rows_by_date
from ..services.orchestrator import process_import
from ..services.routing import GoogleDirectionsProvider
from ..services.summary import render_summary_line

"""CLI entrypoint.

Flow:
- Load .env (override) and config/import.yml
- Parse the schedule file, detect headers, apply --map-* overrides
- --inspect-data: print the detected mapping and sample rows, then exit
- Otherwise run process_import() against PostgreSQL (or the in-memory store
  when DISABLE_DB_CONNECT=1) and print the SUMMARY line

Exit codes: 0 all days calculated / 2 some day failed / 1 fatal / 3 duplicate file
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2
EXIT_DUPLICATE_FILE = 3


@contextmanager
def _db_connection(cfg: ImportConfig) -> Iterator[object]:  # pragma: no cover (thin wrapper)
    """Open a psycopg2 connection (autocommit off).

        接続情報の優先順位:
            1. `.env` / プロセス環境変数の DATABASE_URL / PGDSN (DSN 全体)
            2. 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
            3. config/import.yml の database セクション (不足分のフォールバック)
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if not dsn:
        host = os.getenv("PGHOST", db_cfg.host or "localhost")
        port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
        user = os.getenv("PGUSER", db_cfg.user or "postgres")
        password = os.getenv("PGPASSWORD", db_cfg.password or "")
        database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"

    conn = psycopg2.connect(dsn)
    conn.autocommit = False  # トランザクション境界は store.transaction() が管理
    try:
        yield conn
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True により .env の値で既存環境変数を上書き (DB 接続情報 / API キーを最優先)。
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Schedule file -> daily mileage importer")
    p.add_argument("file", type=Path, help="Schedule file (.csv / .xlsx / .xls / .txt)")
    p.add_argument("--user-id", default=os.getenv("IMPORT_USER_ID", "local"), help="Owner of the imported entries")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to import.yml")
    p.add_argument("--rate", type=float, default=None, help="Mileage rate per mile (default: user setting)")
    p.add_argument("--map-date", default=None, help="Column holding the visit date")
    p.add_argument("--map-start", default=None, help="Column holding the stop address")
    p.add_argument("--map-end", default=None, help="Column holding the end address")
    p.add_argument("--map-notes", default=None, help="Column holding notes")
    p.add_argument("--init-db", action="store_true", help="Create tables from schema.sql before importing")
    p.add_argument("--report", action="store_true", help="Print the user's mileage totals after the import")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print detected headers & first rows then exit")
    return p.parse_args(argv)


def _mapping_from_args(rows: list[RawRow], args: argparse.Namespace) -> HeaderMapping:
    return detect_headers(rows).with_overrides(
        date=args.map_date,
        start_address=args.map_start,
        end_address=args.map_end,
        notes=args.map_notes,
    )


def _inspect_data(path: Path, rows: list[RawRow], mapping: HeaderMapping) -> int:
    print(f"FILE: {path.name} rows={len(rows)}")
    print(f"  mapping={mapping.as_dict()}")
    if mapping.date:
        groups, invalid = partition_rows_by_date(rows, mapping)
        print(f"  days={len(groups)} invalid_rows={len(invalid)}")
    # datetime 含む場合は isoformat で表示
    for r in rows[:3]:
        print("    sample_row=", {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in r.items()})
    return EXIT_SUCCESS_ALL


def _run_import(
    cfg: ImportConfig,
    args: argparse.Namespace,
    store: ScheduleStore,
    file_bytes: bytes,
    rows: list[RawRow],
    mapping: HeaderMapping,
) -> int:
    logger = setup_logging()
    settings = resolve_user_settings(cfg, store.get_user_settings(args.user_id), args.user_id)
    provider = GoogleDirectionsProvider(
        base_url=cfg.routing.base_url,
        timeout_seconds=cfg.routing.timeout_seconds,
    )
    error_log = ErrorLogBuffer(Path(cfg.error_log_dir))
    try:
        summary = process_import(
            store,
            provider,
            args.user_id,
            rows,
            mapping,
            args.rate,
            compute_file_hash(file_bytes),
            args.file.name,
            settings=settings,
            cost_per_call=cfg.routing.cost_per_call,
            usage_timezone=cfg.timezone,
            error_log=error_log,
        )
    except DuplicateFileError as e:
        logger.warning(f"duplicate: {e}")
        return EXIT_DUPLICATE_FILE
    except ImportProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL
    except StoreError as e:
        logger.error(f"store: {e}")
        return EXIT_FATAL
    finally:
        provider.close()
        written = error_log.flush()
        if written is not None:
            logger.info(f"error log written: {written}")

    # log_summary が "SUMMARY " を付与するため先頭ラベルを除去
    log_summary(render_summary_line(summary)[len("SUMMARY "):])

    if args.report:
        totals = summarize_entries(store.list_entries(args.user_id))
        logger.info(
            f"report user={args.user_id} trip_days={totals.trip_days} "
            f"distance_mi={totals.total_distance:.2f} amount={totals.total_amount:.2f} "
            f"avg_daily_mi={totals.avg_daily_distance:.2f}"
        )

    return EXIT_PARTIAL_FAILURE if summary.has_failures else EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # 空リスト [] を渡すテストで sys.argv が混入しないよう None のときのみ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        file_bytes, rows = read_schedule_path(args.file)
    except UnsupportedFormatError as e:
        logger.error(f"parse: {e}")
        return EXIT_FATAL
    except (OSError, ValueError) as e:
        logger.error(f"parse: cannot read {args.file}: {e}")
        return EXIT_FATAL
    logger.info(f"Processing schedule: {args.file} rows={len(rows)}")

    try:
        mapping = _mapping_from_args(rows, args)
    except KeyError as e:  # pragma: no cover (argparse が既知フィールドのみ渡す)
        logger.error(f"mapping: {e}")
        return EXIT_FATAL
    logger.debug(f"mapping={mapping.as_dict()}")

    if args.inspect_data:
        return _inspect_data(args.file, rows, mapping)

    # DB 接続制御: テスト等で完全に無効化したい場合 DISABLE_DB_CONNECT=1
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        logger.info("mode=mock")
        return _run_import(cfg, args, InMemoryStore(), file_bytes, rows, mapping)

    try:
        with _db_connection(cfg) as conn:
            if args.init_db:
                apply_schema(conn)
            logger.info("mode=live")
            return _run_import(cfg, args, PostgresStore(conn), file_bytes, rows, mapping)
    except psycopg2.Error as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
