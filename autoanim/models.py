"""
数据模型定义
包含枚举类型、动画目录配置模型 (Pydantic) 和动作记录 (ActionRecord)
"""

import re
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .config import Config

# ============================================================================
# 枚举类型 (Enums)
# ============================================================================

class RollPhase(str, Enum):
    """多段结算中本次事件所处的阶段"""
    ATTACK = "attack"
    DAMAGE = "damage"
    PASS = "pass"


class Menu(str, Enum):
    """动画定义的类型（匹配器按此分组）"""
    MELEE = "melee"
    RANGE = "range"
    ONTOKEN = "ontoken"
    AURA = "aura"
    TEMPLATEFX = "templatefx"
    PRESET = "preset"


class PresetType(str, Enum):
    """preset 菜单下的细分行为"""
    TELEPORTATION = "teleportation"
    PRO_TO_TEMP = "proToTemp"
    THUNDERWAVE = "thunderwave"
    EXPLOSION = "explosion"
    BUFF = "buff"


class MatchMode(str, Enum):
    EXACT = "exact"
    CONTAINS = "contains"


# 旧版物品标记 animType -> (menu, preset)
LEGACY_ANIM_TYPES: Dict[str, PresetType] = {
    "t8": PresetType.PRO_TO_TEMP,
    "t9": PresetType.EXPLOSION,
    "t10": PresetType.EXPLOSION,
    "t12": PresetType.TELEPORTATION,
}

TEMPLATE_PRESETS = (PresetType.PRO_TO_TEMP, PresetType.THUNDERWAVE)


def normalize_name(name: Optional[str]) -> str:
    """去除所有空白并转小写: "Fire Bolt" -> "firebolt" """
    if not name:
        return ""
    return re.sub(r"\s+", "", name).lower()


# ============================================================================
# 动画目录模型 (Catalog Definitions) - Pydantic
# ============================================================================

class Point(BaseModel):
    """画布像素坐标"""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float


class Anchor(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = 0.5
    y: float = 0.5


class VideoRef(BaseModel):
    """素材库中的视频引用（仅用于判断 complete 变体）"""
    model_config = ConfigDict(frozen=True)

    menu: str = ""
    animation: str = ""
    variant: str = ""
    color: str = ""

    @property
    def is_complete(self) -> bool:
        """素材自身最后一帧已淡出到透明"""
        return self.variant == "complete" or self.animation == "complete"


class SoundSpec(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    file: str
    delay: int = 0
    volume: float = 0.75
    start_time: int = Field(default=0, alias="startTime")


class LayerOptions(BaseModel):
    """
    特效层选项 - 全部字段都有默认值

    使用 alias 兼容目录中的驼峰字段名 (isRadius, addTokenWidth ...)
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    anchor: Anchor = Anchor()
    is_radius: bool = Field(default=False, alias="isRadius")
    size: float = 1.0
    add_token_width: bool = Field(default=False, alias="addTokenWidth")
    elevation: int = Config.DEFAULT_ELEVATION
    is_absolute: bool = Field(default=False, alias="isAbsolute")
    fade_in: int = Field(default=250, alias="fadeIn")
    fade_out: int = Field(default=500, alias="fadeOut")
    opacity: float = 1.0
    repeat: int = 1
    repeat_delay: int = Field(default=250, alias="repeatDelay")
    playback_rate: float = Field(default=1.0, alias="playbackRate")
    z_index: int = Field(default=1, alias="zIndex")
    is_wait: bool = Field(default=False, alias="isWait")
    delay: int = 0
    is_masked: bool = Field(default=False, alias="isMasked")
    persistent: bool = False
    unbind_visibility: bool = Field(default=False, alias="unbindVisibility")
    unbind_alpha: bool = Field(default=False, alias="unbindAlpha")
    rotate_source: bool = Field(default=False, alias="rotateSource")
    animation_source: bool = Field(default=False, alias="animationSource")
    fake_location: Optional[Point] = Field(default=None, alias="fakeLocation")
    # 飞行特效从场景中已有的同名特效处发出（见 GeometryResolver.fake_source）
    from_effect_origin: bool = Field(default=False, alias="fromEffectOrigin")
    # 从来源拉伸到落点（投射物）
    stretch: bool = False


class EffectLayerSpec(BaseModel):
    """单个特效层: 文件 + 视频引用 + 可选音效 + 选项"""
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    file: str = ""
    video: VideoRef = VideoRef()
    sound: Optional[SoundSpec] = None
    options: LayerOptions = LayerOptions()


class AnimationDefinition(BaseModel):
    """
    动画定义 - 由目录/注册表持有，对调度引擎只读

    match_key 在校验时自动规范化；disabled 的条目保留但永不匹配。
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    match_key: str = Field(alias="name")
    label: str = ""
    match_mode: MatchMode = Field(default=MatchMode.EXACT, alias="matchMode")
    menu: Menu
    preset_type: Optional[PresetType] = Field(default=None, alias="presetType")

    source: Optional[EffectLayerSpec] = None
    secondary: Optional[EffectLayerSpec] = None
    target: Optional[EffectLayerSpec] = None
    # 近战超出距离时替换目标层的投掷变体
    range_switch: Optional[EffectLayerSpec] = Field(default=None, alias="rangeSwitch")

    enabled: bool = True

    @model_validator(mode='before')
    @classmethod
    def map_legacy_anim_type(cls, data: Any) -> Any:
        """兼容旧版 animType (t8/t9/t10/t12) 写法"""
        if not isinstance(data, dict):
            return data
        anim_type = data.get('animType')
        if anim_type in LEGACY_ANIM_TYPES and 'presetType' not in data and 'preset_type' not in data:
            data = dict(data)
            data['presetType'] = LEGACY_ANIM_TYPES[anim_type].value
            data.setdefault('menu', Menu.PRESET.value)
        return data

    @field_validator('match_key')
    @classmethod
    def normalize_match_key(cls, value: str) -> str:
        return normalize_name(value)

    def layers(self) -> Dict[str, EffectLayerSpec]:
        """已启用的特效层 (source / secondary / target)"""
        found = {}
        for role in ("source", "secondary", "target"):
            spec = getattr(self, role)
            if spec is not None and spec.enabled:
                found[role] = spec
        return found

    def problems(self) -> List[str]:
        """返回作者配置错误列表，空列表表示定义有效"""
        issues = []
        layers = self.layers()
        if not layers:
            issues.append(f"definition '{self.match_key}' has no enabled layer")
        for role, spec in layers.items():
            if not spec.file:
                issues.append(f"definition '{self.match_key}' {role} layer has no file")
        if self.menu == Menu.PRESET and self.preset_type is None:
            issues.append(f"definition '{self.match_key}' is a preset without presetType")
        return issues

    @property
    def is_template_animation(self) -> bool:
        return self.menu == Menu.TEMPLATEFX or (
            self.menu == Menu.PRESET and self.preset_type in TEMPLATE_PRESETS
        )

    @property
    def is_aura(self) -> bool:
        return self.menu == Menu.AURA

    @property
    def is_teleport(self) -> bool:
        return self.menu == Menu.PRESET and self.preset_type == PresetType.TELEPORTATION


class CategorySet(BaseModel):
    """有序分类: 名称 -> 菜单 + 所使用的定义 + 物品名列表"""
    name: str
    menu: Menu
    definition: str = ""
    items: List[str] = []

    @model_validator(mode='after')
    def normalize_items(self) -> "CategorySet":
        self.items = [normalize_name(i) for i in self.items]
        if not self.definition:
            self.definition = self.menu.value
        self.definition = normalize_name(self.definition)
        return self


# ============================================================================
# 动作记录 (Action Record) - 每个事件一次，调度后丢弃
# ============================================================================

@dataclass(frozen=True)
class TokenRef:
    """宿主 token 的引用（只保存 id，几何信息通过 SceneQuery 实时读取）"""
    id: str
    name: str = ""


@dataclass
class TemplateData:
    """区域模板几何信息（像素坐标，distance/width 为场景单位）"""
    shape: str          # circle / cone / ray / rect
    x: float
    y: float
    distance: float
    direction: float = 0.0
    width: float = 0.0
    angle: float = 53.13
    id: str = ""


@dataclass
class ItemAnimationFlags:
    """物品上的动画标记（宿主物品 flags 的映射）"""
    override: bool = False
    kill: bool = False
    preset_type: Optional[PresetType] = None
    definition: Optional[AnimationDefinition] = None
    sound: Optional[SoundSpec] = None


@dataclass
class ActionRecord:
    """
    规范化动作记录

    由 ActionNormalizer 从各规则系统的原生事件转换而来。
    不变量:
    - normalized_name == normalize_name(item_name)
    - hit_targets ⊆ all_targets
    """
    system_id: str
    source_token: TokenRef
    item_name: str
    all_targets: List[TokenRef] = field(default_factory=list)
    hit_targets: List[TokenRef] = field(default_factory=list)
    user_id: str = ""
    roll_phase: RollPhase = RollPhase.PASS
    is_active_effect_trigger: bool = False
    template_data: Optional[TemplateData] = None
    origin_id: str = ""
    item_flags: ItemAnimationFlags = field(default_factory=ItemAnimationFlags)
    has_attack: bool = False
    has_damage: bool = False
    is_critical: bool = False
    is_fumble: bool = False
    force_miss: bool = False
    reach: int = 0
    destination: Optional[Point] = None
    normalized_name: str = field(init=False)

    def __post_init__(self):
        self.normalized_name = normalize_name(self.item_name)
        if not self.origin_id:
            self.origin_id = str(uuid.uuid4())
        target_ids = {t.id for t in self.all_targets}
        strays = [t.id for t in self.hit_targets if t.id not in target_ids]
        if strays:
            raise ValueError(f"hit targets not in all targets: {strays}")

    def is_hit(self, token: TokenRef) -> bool:
        return any(t.id == token.id for t in self.hit_targets)

    def name_includes(self, keyword: str) -> bool:
        return normalize_name(keyword) in self.normalized_name
