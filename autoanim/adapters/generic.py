from typing import Any, Mapping

from .base import ActionDraft, ActionSourceAdapter


class GenericAdapter(ActionSourceAdapter):
    """
    通用入口: playAnimation(sourceToken, targets, item)
    供宏或其他模块直接调用，不区分攻击/伤害阶段。
    """

    system_id = "generic"

    def extract(self, payload: Mapping[str, Any]) -> ActionDraft:
        return self.item_draft(
            payload,
            payload.get("item"),
            user_id=payload.get("user", ""),
            source_token=self.token(payload.get("token")),
            targets=self.tokens(payload.get("targets")),
            hit_targets=self.tokens(payload["hitTargets"]) if "hitTargets" in payload else None,
            roll_type=payload.get("rollType", "pass"),
        )
