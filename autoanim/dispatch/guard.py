import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Set, Tuple

from ..config import DispatchSettings
from ..models import ActionRecord
from .constants import GuardState

logger = logging.getLogger(__name__)


@dataclass
class GuardEntry:
    state: GuardState = GuardState.IDLE
    targets: Set[str] = field(default_factory=set)


class PlaybackGuard:
    """
    Playback Guard - 屏蔽开关与重复播放保护

    以 (origin, scene) 为键维护状态：
        IDLE --屏蔽条件--> ARMED --下一次未屏蔽的评估--> IDLE
        IDLE --渲染--> PLAYED --特效移除 / 场景卸载--> IDLE

    渲染期间记录全部目标；渲染结束后只保留持久特效的目标，
    目标集合为空的条目直接删除。

    屏蔽条件：物品 kill 标记、名称包含排除关键字、用户在屏蔽列表中。
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str], GuardEntry] = {}
        self._retracted: Set[str] = set()

    def evaluate(self, record: ActionRecord, scene_id: str, settings: DispatchSettings) -> bool:
        """
        Returns:
            True 表示本次应当被屏蔽（origin 进入 ARMED）
        """
        key = (record.origin_id, scene_id)
        reason = self.kill_reason(record, settings)
        if reason:
            # 已播放的目标集合保留，解除屏蔽后恢复为 PLAYED
            entry = self._entries.setdefault(key, GuardEntry())
            entry.state = GuardState.ARMED
            logger.debug("Origin %s armed: %s", record.origin_id, reason)
            return True

        entry = self._entries.get(key)
        if entry is not None and entry.state == GuardState.ARMED:
            if entry.targets:
                entry.state = GuardState.PLAYED
            else:
                del self._entries[key]
        return False

    @staticmethod
    def kill_reason(record: ActionRecord, settings: DispatchSettings) -> str:
        if record.item_flags.kill:
            return "item kill flag"
        for keyword in settings.excluded_keywords:
            if keyword and record.name_includes(keyword):
                return f"excluded keyword '{keyword}'"
        if record.user_id in settings.suppressed_users:
            return f"suppressed user '{record.user_id}'"
        return ""

    def state(self, origin: str, scene_id: str) -> GuardState:
        entry = self._entries.get((origin, scene_id))
        return entry.state if entry else GuardState.IDLE

    def has_target(self, origin: str, scene_id: str, token_id: str) -> bool:
        entry = self._entries.get((origin, scene_id))
        return entry is not None and token_id in entry.targets

    def mark_played(self, origin: str, scene_id: str, targets: Iterable[str]) -> None:
        targets = set(targets)
        if not targets:
            return
        entry = self._entries.setdefault((origin, scene_id), GuardEntry())
        entry.state = GuardState.PLAYED
        entry.targets.update(targets)

    def release(self, origin: str, scene_id: str, targets: Iterable[str]) -> None:
        """
        渲染结束后释放非持久特效的目标。
        短时特效会自行消失，宿主不会通知移除；之后由场景查询判断是否仍在播放。
        """
        key = (origin, scene_id)
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.targets.difference_update(targets)
        if not entry.targets and entry.state == GuardState.PLAYED:
            del self._entries[key]

    def effect_removed(self, origin: str, scene_id: str) -> None:
        self._entries.pop((origin, scene_id), None)
        self._retracted.discard(origin)

    def __len__(self) -> int:
        return len(self._entries)

    def scene_unloaded(self, scene_id: str) -> None:
        for key in [k for k in self._entries if k[1] == scene_id]:
            del self._entries[key]

    def retract(self, origin: str) -> None:
        self._retracted.add(origin)

    def is_retracted(self, origin: str) -> bool:
        return origin in self._retracted

    def clear_retraction(self, origin: str) -> None:
        self._retracted.discard(origin)

    def clear(self) -> None:
        self._entries.clear()
        self._retracted.clear()
