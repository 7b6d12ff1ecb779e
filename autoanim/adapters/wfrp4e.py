from typing import Any, Mapping

from .base import ActionDraft, ActionSourceAdapter

# 测试类型 -> 测试数据中携带物品的字段
TEST_ITEM_FIELDS = {
    "weapon": "weapon",
    "prayer": "prayer",
    "cast": "spell",
    "trait": "trait",
    "skill": "skill",
}


class Wfrp4eTestAdapter(ActionSourceAdapter):
    """WFRP4e 的 rollWeaponTest / rollPrayerTest / rollCastTest / rollTraitTest / rollTest"""

    system_id = "wfrp4e"

    def extract(self, payload: Mapping[str, Any]) -> ActionDraft:
        test_type = payload.get("testType", "weapon")
        item = payload["data"][TEST_ITEM_FIELDS[test_type]]
        return self.item_draft(
            payload,
            item,
            user_id=payload["info"]["user"],
            source_token=self.token(payload.get("token")),
            targets=self.tokens(payload.get("targets")),
            roll_type="attack",
        )
