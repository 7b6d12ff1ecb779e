"""
D&D 5e 适配器
- Dnd5eChatAdapter: 核心规则下的聊天消息 (createChatMessage)
- MidiQolWorkflowAdapter: midi-qol 工作流（带命中目标与暴击信息）
"""

from typing import Any, Mapping

from .base import ActionDraft, ActionSourceAdapter


class Dnd5eChatAdapter(ActionSourceAdapter):
    system_id = "dnd5e"

    def extract(self, payload: Mapping[str, Any]) -> ActionDraft:
        speaker = payload.get("speaker") or {}
        roll = ((payload.get("flags") or {}).get(self.system_id) or {}).get("roll") or {}
        flavor = payload.get("flavor") or ""
        return self.item_draft(
            payload,
            payload.get("item"),
            user_id=payload["user"]["id"],
            source_token=self.token(speaker.get("token")),
            targets=self.tokens(payload.get("targets")),
            roll_type=(roll.get("type") or flavor or "pass").lower(),
            flavor=flavor,
        )


class Sw5eChatAdapter(Dnd5eChatAdapter):
    system_id = "sw5e"


class MidiQolWorkflowAdapter(ActionSourceAdapter):
    """midi-qol 的 RollComplete / DamageRollComplete 工作流"""

    system_id = "dnd5e"

    def extract(self, payload: Mapping[str, Any]) -> ActionDraft:
        # 弹药优先于武器本身
        item = payload.get("ammo") or payload.get("item")
        return self.item_draft(
            payload,
            item,
            user_id=payload["user"],
            source_token=self.token(payload.get("token")),
            targets=self.tokens(payload.get("targets")),
            hit_targets=self.tokens(payload.get("hitTargets")),
            roll_type=payload.get("workflowType", "attack"),
            is_critical=bool(payload.get("isCritical", False)),
            is_fumble=bool(payload.get("isFumble", False)),
            force_miss=bool(payload.get("forceMiss", False)),
        )
