"""ConversationHistoryStore -- 有界、带 TTL 的会话历史

按会话 id 存储消息列表，追加后只保留最近 20 条；
距最后一次写入超过 1 天的历史读取为空，调用方视为新会话。
"""

from collections.abc import Iterable

from mindgate.core.store import KVStore

from .models import ConversationTurn

MAX_TURNS = 20
HISTORY_TTL_S = 86400


class ConversationHistoryStore:
    """会话历史存储"""

    def __init__(
        self,
        store: KVStore,
        max_turns: int = MAX_TURNS,
        ttl_s: float = HISTORY_TTL_S,
    ) -> None:
        self._store = store
        self.max_turns = max_turns
        self.ttl_s = ttl_s

    @staticmethod
    def _key(conversation_id: str) -> str:
        return f"conversation:{conversation_id}"

    async def get(self, conversation_id: str) -> list[ConversationTurn]:
        raw = await self._store.get(self._key(conversation_id)) or []
        return [ConversationTurn.model_validate(item) for item in raw]

    async def append(self, conversation_id: str, role: str, content: str) -> list[ConversationTurn]:
        """追加单条消息，返回裁剪后的完整历史"""
        return await self.extend(conversation_id, [ConversationTurn(role=role, content=content)])

    async def extend(
        self,
        conversation_id: str,
        turns: Iterable[ConversationTurn],
    ) -> list[ConversationTurn]:
        """按顺序追加多条消息，超出上限时丢弃最旧的"""
        history = await self.get(conversation_id)
        history.extend(turns)
        history = history[-self.max_turns :]
        await self._store.set(
            self._key(conversation_id),
            [turn.model_dump(mode="json") for turn in history],
            ttl_s=self.ttl_s,
        )
        return history

    async def clear(self, conversation_id: str) -> None:
        await self._store.delete(self._key(conversation_id))
