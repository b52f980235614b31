"""
启动闸门：进程接流量之前跑一次，结束（或失败）前不就绪。
- AUTO_MIGRATE=true：确保数据集存在 → 自动补建缺失表；有失败逐条记日志（不阻断启动）
- AUTO_MIGRATE 关闭：只校验；有缺失表直接抛 MissingTablesError，列出缺哪些表，交给运维手动迁移

日志：startup_gate_begin / startup_gate_failed_tables / startup_gate_missing / startup_gate_ok
"""
import os
from typing import Optional

from rolegate.core.errors import MissingTablesError
from rolegate.core.models import MigrationResult
from rolegate.infra.db import Warehouse
from rolegate.infra.logger import emit, emit_error
from rolegate.migrations.migrator import auto_create_missing_tables, ensure_dataset_exists
from rolegate.migrations.validator import validate_all_tables_exist


def auto_migrate_enabled() -> bool:
    return os.getenv("AUTO_MIGRATE", "false").lower() == "true"


def run_startup_gate(warehouse: Warehouse, auto_migrate: Optional[bool] = None) -> Optional[MigrationResult]:
    if auto_migrate is None:
        auto_migrate = auto_migrate_enabled()
    emit("startup_gate_begin", auto_migrate=auto_migrate)

    if auto_migrate:
        ensure_dataset_exists(warehouse)
        result = auto_create_missing_tables(warehouse)
        for f in result.failed:
            emit_error("startup_gate_failed_tables", table=f.table, error=f.error)
        emit("startup_gate_ok", created=result.created, failed=len(result.failed))
        return result

    validation = validate_all_tables_exist(warehouse)
    if not validation.all_tables_exist:
        missing = validation.all_missing()
        emit_error("startup_gate_missing", missing=missing)
        raise MissingTablesError(missing)
    emit("startup_gate_ok", created=[], failed=0)
    return None
