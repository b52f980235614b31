""""模块职能：

存储协作方（列式仓库的最小抽象），基于 SQLAlchemy Core：

读取 DATABASE_URL / DATASET_ID，创建引擎，暴露 Warehouse

Warehouse 提供：dataset_exists / create_dataset、table_exists / create_table、
table(name, fields) 取表句柄、execute(stmt) 执行单条参数化语句

每条语句各自一个短事务（engine.begin()）：跨表写入没有统一事务，
多表操作的顺序与失败记录由数据访问层负责。

SQLAlchemyError 即"存储失败"，这里不捕获，原样上抛。"""

import os
import threading
from typing import Iterable, List, Optional

from sqlalchemy import JSON, Column, DateTime, MetaData, String, Table, create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.schema import CreateSchema

from rolegate.infra.logger import emit

_TYPES = {
    "STRING": lambda: String(255),
    "TIMESTAMP": lambda: DateTime(timezone=True),
}


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./rolegate.db")


def get_dataset_id() -> Optional[str]:
    return os.getenv("DATASET_ID") or None


def make_engine(url: Optional[str] = None) -> Engine:
    url = url or get_database_url()
    return create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
    )


def build_columns(fields: Iterable[dict]) -> List[Column]:
    """字段定义 → Column：REPEATED 存成 JSON 数组，REQUIRED 为 NOT NULL。"""
    cols = []
    for f in fields:
        if f.get("mode") == "REPEATED":
            cols.append(Column(f["name"], JSON, nullable=False))
        else:
            cols.append(Column(f["name"], _TYPES[f["type"]](), nullable=f.get("mode") != "REQUIRED"))
    return cols


class Warehouse:
    def __init__(self, engine: Engine, dataset_id: Optional[str] = None):
        self.engine = engine
        self.dataset_id = dataset_id
        self._metadata = MetaData(schema=dataset_id)
        self._tables_lock = threading.Lock()

    # ---- dataset ----
    def dataset_exists(self) -> bool:
        if not self.dataset_id:
            # 未配置 DATASET_ID：引擎默认 schema 即数据集
            return True
        return inspect(self.engine).has_schema(self.dataset_id)

    def create_dataset(self):
        with self.engine.begin() as conn:
            conn.execute(CreateSchema(self.dataset_id))
        emit("dataset_created", dataset=self.dataset_id)

    # ---- tables ----
    def table_exists(self, name: str) -> bool:
        return inspect(self.engine).has_table(name, schema=self.dataset_id)

    def table(self, name: str, fields: Iterable[dict]) -> Table:
        key = f"{self.dataset_id}.{name}" if self.dataset_id else name
        # 同步路由跑在线程池里，首次取表句柄要串行
        with self._tables_lock:
            existing = self._metadata.tables.get(key)
            if existing is not None:
                return existing
            return Table(name, self._metadata, *build_columns(fields))

    def create_table(self, name: str, fields: Iterable[dict]):
        tbl = self.table(name, fields)
        # checkfirst=False：已存在就报错，迁移只建校验报告缺失的表
        tbl.create(bind=self.engine, checkfirst=False)

    # ---- statements ----
    def execute(self, stmt) -> list:
        with self.engine.begin() as conn:
            res = conn.execute(stmt)
            if res.returns_rows:
                return [dict(r._mapping) for r in res]
            return []


_warehouse: Optional[Warehouse] = None


def get_warehouse() -> Warehouse:
    """进程级单例，按当前环境变量惰性创建。"""
    global _warehouse
    if _warehouse is None:
        _warehouse = Warehouse(make_engine(), get_dataset_id())
    return _warehouse


def reset_warehouse(warehouse: Optional[Warehouse] = None):
    """测试或脚本切换库时使用。"""
    global _warehouse
    _warehouse = warehouse
