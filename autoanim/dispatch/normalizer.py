"""
动作规范化层 - 原生事件 → ActionRecord

职责：执行所有"不适用"前置条件，产出完整的 ActionRecord 或 None。
多客户端环境下同一事件会广播到所有客户端，只有发起者本地的 normalizer 继续处理。
"""

import logging
from typing import Any, Mapping, Optional

from ..adapters.base import ActionDraft, ActionSourceAdapter
from ..models import ActionRecord, RollPhase

logger = logging.getLogger(__name__)


class ActionNormalizer:
    """
    前置条件（任意一项失败都返回 None，绝不抛出）：
    1. 事件发起者不是本地用户
    2. 长休通知
    3. 没有物品名 / 没有来源 token
    """

    LONG_REST_MARKERS = ("long rest",)

    def __init__(self, local_user_id: str):
        self.local_user_id = local_user_id

    def normalize(self, adapter: ActionSourceAdapter, payload: Mapping[str, Any]) -> Optional[ActionRecord]:
        try:
            draft = adapter.extract(payload)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.debug("[%s] adapter could not extract action: %s", adapter.system_id, e)
            return None
        return self.from_draft(adapter.system_id, draft)

    def from_draft(self, system_id: str, draft: ActionDraft) -> Optional[ActionRecord]:
        if draft.user_id != self.local_user_id:
            return None
        flavor = draft.flavor.lower()
        if any(marker in flavor for marker in self.LONG_REST_MARKERS):
            logger.debug("Ignoring rest notification")
            return None
        if not draft.item_name or draft.source_token is None:
            logger.debug("Action without item or source token, skipping")
            return None

        target_ids = {t.id for t in draft.targets}
        if draft.hit_targets is None:
            hit_targets = list(draft.targets)
        else:
            hit_targets = [t for t in draft.hit_targets if t.id in target_ids]
            if len(hit_targets) != len(draft.hit_targets):
                logger.debug("Dropped hit targets that were not targeted")

        return ActionRecord(
            system_id=system_id,
            user_id=draft.user_id,
            source_token=draft.source_token,
            item_name=draft.item_name,
            all_targets=list(draft.targets),
            hit_targets=hit_targets,
            roll_phase=self.parse_roll_phase(draft.roll_type),
            is_active_effect_trigger=draft.is_active_effect,
            template_data=draft.template,
            origin_id=draft.item_uuid,
            item_flags=draft.flags,
            has_attack=draft.has_attack,
            has_damage=draft.has_damage,
            is_critical=draft.is_critical,
            is_fumble=draft.is_fumble,
            force_miss=draft.force_miss,
            reach=draft.reach,
            destination=draft.destination,
        )

    @staticmethod
    def parse_roll_phase(roll_type: str) -> RollPhase:
        text = (roll_type or "").lower()
        if "attack" in text:
            return RollPhase.ATTACK
        if "damage" in text:
            return RollPhase.DAMAGE
        return RollPhase.PASS
