# scripts/migrate_tables.py
"""
运维脚本：按 Role 登记表校验 / 补建表（只增不改，不会修改已有表结构与数据）。

用法：
  python -m scripts.migrate_tables validate   # 只校验，缺表则退出码 1 并列出缺哪些
  python -m scripts.migrate_tables migrate    # 确保数据集存在 + 补建缺失表，有失败则退出码 1

也可被测试直接导入调用（validate() / migrate()）。
"""
import argparse
import os
import sys

# 确保脚本在控制台有输出；不影响主服务的日志设置
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from rolegate.infra.db import get_warehouse  # noqa: E402
from rolegate.infra.logger import emit, emit_error  # noqa: E402
from rolegate.migrations.migrator import auto_create_missing_tables, ensure_dataset_exists  # noqa: E402
from rolegate.migrations.validator import validate_all_tables_exist  # noqa: E402


def validate(wh=None) -> int:
    wh = wh or get_warehouse()
    result = validate_all_tables_exist(wh)
    if result.all_tables_exist:
        print("[migrate_tables] all tables exist.", flush=True)
        return 0
    print(f"[migrate_tables] missing tables: {', '.join(result.all_missing())}", flush=True)
    return 1


def migrate(wh=None) -> int:
    wh = wh or get_warehouse()
    emit("migrate_tables_begin", database_url=os.getenv("DATABASE_URL"))
    ensure_dataset_exists(wh)
    result = auto_create_missing_tables(wh)
    for name in result.created:
        print(f"[migrate_tables] created: {name}", flush=True)
    for f in result.failed:
        print(f"[migrate_tables] FAILED: {f.table}: {f.error}", file=sys.stderr, flush=True)
    if not result.created and not result.failed:
        print("[migrate_tables] nothing to do.", flush=True)
    return 1 if result.failed else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="migrate_tables")
    parser.add_argument("command", choices=["validate", "migrate"])
    args = parser.parse_args(argv)
    return validate() if args.command == "validate" else migrate()


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as e:
        emit_error("migrate_tables_error", error=str(e))
        print(f"[migrate_tables] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)
