"""
测试公共 fixture
"""

import sys
from pathlib import Path

import pytest

# 添加项目路径到 sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pool_volume.database import Database
from pool_volume.shutdown import ShutdownCoordinator


POOL_A = "6d4UYGAEs4Akq6py8Vb3Qv5PvMkecPLS1Z9bBCcip2R7"
POOL_B = "CWjGo5jkduSW5LN5rxgiQ18vGnJJEKWPCXkpJGxKSQTH"
POOL_C = "7xuPLn8Bun4ZGHeD95xYLnPKReKtSe7zfVRzRJWJZVZW"


@pytest.fixture
def db(tmp_path):
    """创建临时测试数据库（已建表）"""
    db = Database(str(tmp_path / "test_pool_volume.db"))
    db.init_schema()
    return db


@pytest.fixture
def shutdown():
    return ShutdownCoordinator()
