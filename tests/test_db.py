from concurrent.futures import ThreadPoolExecutor

from rolegate.core.roles import USERS_TABLE
from rolegate.infra.db import Warehouse
from rolegate.schema.generator import users_table_schema


def test_table_handle_built_once_under_concurrency(empty_warehouse):
    wh = Warehouse(empty_warehouse.engine)
    with ThreadPoolExecutor(max_workers=16) as pool:
        handles = list(pool.map(lambda _: wh.table(USERS_TABLE, users_table_schema()), range(64)))
    assert all(h is handles[0] for h in handles)
    assert list(wh._metadata.tables) == [USERS_TABLE]
