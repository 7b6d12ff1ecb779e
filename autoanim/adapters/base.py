"""
规则系统适配层 - 各规则系统原生事件到 ActionDraft 的字段映射

核心永远不按 system_id 分支：每个规则系统一个 ActionSourceAdapter 子类，
只负责把原生 payload 拆成统一的 ActionDraft，前置条件判断交给 ActionNormalizer。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from ..models import (
    AnimationDefinition, ItemAnimationFlags, LEGACY_ANIM_TYPES, Point, PresetType,
    SoundSpec, TemplateData, TokenRef,
)

FLAG_SCOPE = "autoanimations"


@dataclass
class ActionDraft:
    """适配器的输出，尚未经过前置条件校验"""
    user_id: str
    item_name: Optional[str]
    source_token: Optional[TokenRef]
    targets: List[TokenRef] = field(default_factory=list)
    # None 表示该规则系统不提供命中信息
    hit_targets: Optional[List[TokenRef]] = None
    item_uuid: str = ""
    roll_type: str = ""
    flavor: str = ""
    is_active_effect: bool = False
    template: Optional[TemplateData] = None
    flags: ItemAnimationFlags = field(default_factory=ItemAnimationFlags)
    has_attack: bool = False
    has_damage: bool = False
    is_critical: bool = False
    is_fumble: bool = False
    force_miss: bool = False
    reach: int = 0
    destination: Optional[Point] = None


class ActionSourceAdapter(ABC):
    """每个规则系统一个实现"""

    system_id: str = ""

    @abstractmethod
    def extract(self, payload: Mapping[str, Any]) -> ActionDraft:
        ...

    # ------------------------------------------------------------------ #
    # 共享的字段映射工具
    # ------------------------------------------------------------------ #

    @staticmethod
    def token(data: Any) -> Optional[TokenRef]:
        if not data:
            return None
        if isinstance(data, TokenRef):
            return data
        if isinstance(data, str):
            return TokenRef(id=data)
        return TokenRef(id=str(data["id"]), name=data.get("name", ""))

    @classmethod
    def tokens(cls, items: Optional[List[Any]]) -> List[TokenRef]:
        found = [cls.token(i) for i in (items or [])]
        return [t for t in found if t is not None]

    @staticmethod
    def template(data: Optional[Mapping[str, Any]]) -> Optional[TemplateData]:
        if not data:
            return None
        return TemplateData(
            shape=data.get("t", data.get("shape", "circle")),
            x=float(data["x"]),
            y=float(data["y"]),
            distance=float(data.get("distance", 0)),
            direction=float(data.get("direction", 0)),
            width=float(data.get("width", 0)),
            angle=float(data.get("angle", 53.13)),
            id=str(data.get("id", "")),
        )

    @staticmethod
    def point(data: Optional[Mapping[str, Any]]) -> Optional[Point]:
        """传送目的地等画布坐标"""
        if not data:
            return None
        return Point(x=float(data["x"]), y=float(data["y"]))

    @staticmethod
    def flags(item: Optional[Mapping[str, Any]]) -> ItemAnimationFlags:
        """解析物品上的 autoanimations 标记"""
        if not item:
            return ItemAnimationFlags()
        raw = (item.get("flags") or {}).get(FLAG_SCOPE) or {}

        preset = raw.get("presetType")
        preset_type = PresetType(preset) if preset else LEGACY_ANIM_TYPES.get(raw.get("animType"))

        definition = None
        if raw.get("animation"):
            definition = AnimationDefinition.model_validate(raw["animation"])

        sound = None
        sound_data = raw.get("sound") or {}
        if sound_data.get("enable") and sound_data.get("file"):
            sound = SoundSpec.model_validate(sound_data)

        return ItemAnimationFlags(
            override=bool(raw.get("override", False)),
            kill=bool(raw.get("killAnim", False)),
            preset_type=preset_type,
            definition=definition,
            sound=sound,
        )

    def item_draft(self, payload: Mapping[str, Any], item: Optional[Mapping[str, Any]], **fields) -> ActionDraft:
        """按物品（或主动效果）填充通用字段"""
        effect = payload.get("activeEffect")
        if effect:
            name = effect.get("label") or effect.get("name")
        else:
            name = item.get("name") if item else None
        draft = ActionDraft(
            user_id=str(fields.pop("user_id", "")),
            item_name=name,
            source_token=fields.pop("source_token", None),
            item_uuid=(item or {}).get("uuid", "") or (effect or {}).get("uuid", ""),
            is_active_effect=bool(effect),
            flags=self.flags(item),
            has_attack=bool((item or {}).get("hasAttack", False)),
            has_damage=bool((item or {}).get("hasDamage", False)),
            reach=int((item or {}).get("reach", 0) or 0),
            template=self.template(payload.get("template")),
            destination=self.point(payload.get("destination")),
        )
        for key, value in fields.items():
            setattr(draft, key, value)
        return draft
