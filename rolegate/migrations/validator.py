""""表校验：逐个探测 Role 推导出的每角色表，另外单独探测 users 表。

单表探测出错按"不存在"处理（失败即关闭），记日志后继续扫描剩余表，不中断。

日志：
- table_probe_ok / table_probe_missing / table_probe_error
- validate_done"""
from rolegate.core.models import ValidationResult
from rolegate.core.roles import USERS_TABLE
from rolegate.infra.db import Warehouse
from rolegate.infra.logger import emit, emit_error
from rolegate.schema.generator import expected_table_names


def check_table_exists(warehouse: Warehouse, name: str) -> bool:
    try:
        exists = warehouse.table_exists(name)
    except Exception as e:
        emit_error("table_probe_error", table=name, error=str(e))
        return False
    if exists:
        emit("table_probe_ok", table=name)
    else:
        emit("table_probe_missing", level="WARNING", table=name)
    return exists


def validate_all_tables_exist(warehouse: Warehouse) -> ValidationResult:
    existing, missing = [], []
    for name in expected_table_names():
        (existing if check_table_exists(warehouse, name) else missing).append(name)

    users_ok = check_table_exists(warehouse, USERS_TABLE)
    result = ValidationResult(
        all_tables_exist=not missing and users_ok,
        missing_tables=missing,
        existing_tables=existing,
        users_table_exists=users_ok,
    )
    emit(
        "validate_done",
        level="INFO" if result.all_tables_exist else "WARNING",
        all_tables_exist=result.all_tables_exist,
        missing=result.all_missing(),
    )
    return result
