"""配置常量模块 -- 可通过环境变量覆盖

包含数据目录、SQLite 路径、KV 存储后端等可配置常量。
"""

import os
from pathlib import Path

# 支持的 KV 存储后端
STORE_BACKENDS = ("sqlite", "memory")


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("MINDGATE_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "MINDGATE_DB_PATH",
        str(_get_base_dir() / "sqlite" / "mindgate.db"),
    )


def get_store_backend() -> str:
    """获取 KV 存储后端（sqlite / memory），非法值回落到 sqlite"""
    backend = os.environ.get("MINDGATE_STORE_BACKEND", "sqlite").lower()
    return backend if backend in STORE_BACKENDS else "sqlite"
