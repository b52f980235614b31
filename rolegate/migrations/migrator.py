""""自动迁移（只增不改）：

ensure_dataset_exists()：数据集不存在则创建（幂等）

auto_create_missing_tables()：先校验；全部存在直接返回空结果。
否则逐个创建缺失表（users 表优先），成功记入 created，失败连同错误信息记入 failed，
单表失败不中断整轮。永远不删、不改已有表。

日志：
- migrate_begin / migrate_table_created / migrate_table_failed / migrate_done"""
from rolegate.core.models import FailedTable, MigrationResult
from rolegate.core.roles import USERS_TABLE
from rolegate.infra.db import Warehouse
from rolegate.infra.logger import emit, emit_error
from rolegate.migrations.validator import validate_all_tables_exist
from rolegate.schema.generator import role_table_schema, users_table_schema


def ensure_dataset_exists(warehouse: Warehouse):
    try:
        if not warehouse.dataset_exists():
            warehouse.create_dataset()
    except Exception as e:
        emit_error("dataset_create_error", dataset=warehouse.dataset_id, error=str(e))
        raise


def auto_create_missing_tables(warehouse: Warehouse) -> MigrationResult:
    emit("migrate_begin")
    validation = validate_all_tables_exist(warehouse)
    result = MigrationResult()
    if validation.all_tables_exist:
        emit("migrate_done", created=[], failed=0, note="nothing_to_do")
        return result

    todo = []
    if not validation.users_table_exists:
        todo.append((USERS_TABLE, users_table_schema()))
    todo.extend((name, role_table_schema()) for name in validation.missing_tables)

    for name, fields in todo:
        try:
            warehouse.create_table(name, fields)
        except Exception as e:
            result.failed.append(FailedTable(table=name, error=str(e)))
            emit_error("migrate_table_failed", table=name, error=str(e))
            continue
        result.created.append(name)
        emit("migrate_table_created", table=name)

    emit(
        "migrate_done",
        level="INFO" if not result.failed else "ERROR",
        created=result.created,
        failed=len(result.failed),
    )
    return result
