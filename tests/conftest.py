# 测试环境变量要在导入 rolegate.main 之前设置
import os

os.environ["LOG_TO_FILE"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["AUTO_MIGRATE"] = "false"
os.environ["DATASET_ID"] = ""

import pytest  # noqa: E402

from rolegate.infra.db import Warehouse, make_engine, reset_warehouse  # noqa: E402
from rolegate.migrations.migrator import auto_create_missing_tables  # noqa: E402
from rolegate.services.auth import AuthService  # noqa: E402


@pytest.fixture
def empty_warehouse(tmp_path):
    wh = Warehouse(make_engine(f"sqlite:///{tmp_path / 'rolegate_test.db'}"))
    reset_warehouse(wh)
    yield wh
    reset_warehouse(None)
    wh.engine.dispose()


@pytest.fixture
def warehouse(empty_warehouse):
    result = auto_create_missing_tables(empty_warehouse)
    assert not result.failed
    return empty_warehouse


@pytest.fixture
def auth(warehouse):
    return AuthService(warehouse)

