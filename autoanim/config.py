"""
全局配置
- Config: 硬编码的校准常量（与特效素材库对齐，不要随意修改）
- DispatchSettings: 每次调度时传入的不可变设置快照
"""

from typing import FrozenSet
from pydantic import BaseModel, ConfigDict, Field


class Config:
    """全局演出配置常量"""

    # ========== 模块信息 ==========
    MODULE_NAME = "Automated Animations"

    # ========== 尺寸校准 ==========
    # 半径类特效: 直径 = RADIUS_FACTOR × size (+ 目标占格宽度)
    RADIUS_FACTOR = 2
    # 非半径类特效: 尺寸 = NON_RADIUS_FACTOR × size × 目标占格宽度
    NON_RADIUS_FACTOR = 1.5

    # ========== 距离 ==========
    DISTANCE_UNAVAILABLE = -1   # 无法测量时的哨兵值
    MELEE_BASE_RANGE = 1        # 近战基础距离（格），实际 = 1 + reach

    # ========== 缺省值 ==========
    DEFAULT_ELEVATION = 1000
    DEFAULT_EXCLUDED_KEYWORD = "xxx"
    MISS_SPOT_PREFIX = "spot"

    # ========== 分类顺序 ==========
    # 与原始 switch 顺序一致，先匹配到的分类胜出
    CATEGORY_ORDER = ("melee", "monk", "healing", "creatureattack", "spellattack", "ranged")


class DispatchSettings(BaseModel):
    """
    调度设置快照

    每次调用 AnimationDispatcher.dispatch 时整体传入，调度过程中不会再读取任何全局设置。
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = True
    debug: bool = False

    # 触发时机
    play_on_damage: bool = Field(default=False, alias="playonDamage")
    play_on_miss: bool = Field(default=False, alias="playonmiss")

    # 距离算法: auto / multi_cell / edge_offset
    distance_mode: str = "auto"

    # 暴击 / 大失败覆盖特效
    enable_critical: bool = Field(default=False, alias="EnableCritical")
    critical_animation: str = Field(default="", alias="CriticalAnimation")
    enable_critical_miss: bool = Field(default=False, alias="EnableCriticalMiss")
    critical_miss_animation: str = Field(default="", alias="CriticalMissAnimation")

    # 屏蔽规则
    excluded_keywords: FrozenSet[str] = frozenset({Config.DEFAULT_EXCLUDED_KEYWORD})
    suppressed_users: FrozenSet[str] = frozenset()

    # 模板特效等待模板创建的超时（秒）
    template_timeout: float = 30.0

    module_name: str = Config.MODULE_NAME

    @property
    def soft_fail(self) -> bool:
        """调试模式下让渲染引擎抛出错误，否则静默失败"""
        return not self.debug
