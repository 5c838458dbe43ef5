"""CLI 入口模块 -- python -m mindgate.core <command>

支持的命令：
  purge-expired  物理删除 SQLite KV 存储中已过期的键
"""

import asyncio
import sys

from .config import get_db_path


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m mindgate.core <command>")
        print("命令:")
        print("  purge-expired  物理删除 SQLite KV 存储中已过期的键")
        sys.exit(1)

    command = sys.argv[1]

    if command == "purge-expired":
        asyncio.run(purge_expired())
    else:
        print(f"未知命令: {command}")
        print("可用命令: purge-expired")
        sys.exit(1)


async def purge_expired() -> int:
    """执行过期键清理"""
    from .store import create_kv_store

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store = await create_kv_store("sqlite", db_path)
    try:
        deleted = await store.purge_expired()
        print(f"清理完成，删除 {deleted} 个过期键")
        return deleted
    finally:
        await store.close()


if __name__ == "__main__":
    main()
