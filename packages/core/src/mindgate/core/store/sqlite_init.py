"""SQLite 数据库初始化

PRAGMA 配置 + kv 表 DDL + 过期索引。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# kv 表 DDL：value 为 JSON 文本，expires_at 为 Unix 时间戳（NULL 表示永不过期）
_KV_DDL = """
CREATE TABLE IF NOT EXISTS kv (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    expires_at  REAL
);
"""

_KV_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_kv_expires_at ON kv(expires_at);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    await conn.execute(_KV_DDL)
    for idx_sql in _KV_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
