#!/usr/bin/env python3
# run_indexer.py
"""
MySQL 가게 데이터 → Elasticsearch 스케줄 색인 (CLI 엔트리포인트)

사전 조건:
  .env (ES_DB_URL, ES_ID, ES_PW, MYSQL_* ...) + config/index_list.yaml

실행:
  # 데몬: 인덱스별 cron 루프 (Ctrl+C 종료)
  python run_indexer.py --mode schedule

  # 대화형: 번호 골라 1회 실행
  python run_indexer.py --mode cli

  # 설정 덮어쓰기
  python run_indexer.py --mode schedule --env-file prod.env \\
      --index-config config/index_list.yaml --tick-ms 500 --log-dir logs
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from index_sync import Config, ConfigurationError, run_cli, run_schedule
from index_sync.log import setup_logging


def main():
    parser = argparse.ArgumentParser(
        description="MySQL → Elasticsearch 스케줄 색인 (static/dynamic)"
    )
    parser.add_argument(
        "--mode", choices=["schedule", "cli"], default="schedule",
        help="schedule=cron 데몬, cli=대화형 1회 실행",
    )
    parser.add_argument("--env-file", type=Path, default=None, help=".env 파일 경로")
    parser.add_argument(
        "--index-config", type=Path, default=None,
        help="인덱스 정의 YAML (미지정 시 INDEX_LIST_PATH 또는 config/index_list.yaml)",
    )

    # ── 스케줄 ──
    schedule = parser.add_argument_group("스케줄")
    schedule.add_argument("--tick-ms", type=int, default=None, help="루프 tick (ms)")
    schedule.add_argument("--timezone", default=None, help="cron 평가 시간대 (default: Asia/Seoul)")

    # ── 로그 ──
    log = parser.add_argument_group("로그")
    log.add_argument("--log-dir", type=Path, default=None)
    log.add_argument("--log-level", default=None, help="DEBUG/INFO/WARNING/ERROR")
    log.add_argument(
        "--failure-log", type=Path, default=None,
        help="실패 청크 JSONL 경로 (미지정 시 log-dir/failures.jsonl)",
    )

    args = parser.parse_args()

    config = Config.from_env(args.env_file)
    overrides = {
        "index_list_path": args.index_config,
        "schedule_term_ms": args.tick_ms,
        "schedule_timezone": args.timezone,
        "log_dir": args.log_dir,
        "log_level": args.log_level.upper() if args.log_level else None,
        "failure_log_path": args.failure_log,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})

    setup_logging(
        log_dir=config.log_dir,
        level=getattr(logging, config.log_level, logging.INFO),
        backup_count=config.log_backup_count,
    )

    try:
        if args.mode == "schedule":
            run_schedule(config)
        elif not run_cli(config):
            sys.exit(1)
    except ConfigurationError as e:
        logging.getLogger("index_sync").error(f"[red]설정 오류[/red] {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
