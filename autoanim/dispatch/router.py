"""
工作流路由 - 按结算阶段决定本次事件是否播放动画

路由优先级（严格有序，首个命中生效）：
1. 主动效果触发 → ANIMATE
2. 伤害时播放 且 伤害阶段 → ANIMATE
3. 伤害时播放 且 pass 阶段 且 物品无伤害 → ANIMATE
4. 伤害时播放 → SKIP
5. 伤害阶段 → SKIP
6. 攻击阶段 → ANIMATE
7. 物品无攻击 → ANIMATE
8. 其余 → SKIP
"""

from typing import Callable, List, Tuple

from ..config import DispatchSettings
from ..models import ActionRecord, RollPhase
from .constants import Route

RouteRule = Tuple[str, Callable[[ActionRecord, DispatchSettings], bool], Route]


class WorkflowRouter:

    _ROUTING_RULES: List[RouteRule] = [
        ("active_effect", lambda r, s: r.is_active_effect_trigger, Route.ANIMATE),
        ("damage_roll_on_damage", lambda r, s: s.play_on_damage and r.roll_phase == RollPhase.DAMAGE, Route.ANIMATE),
        ("utility_on_damage", lambda r, s: s.play_on_damage and r.roll_phase == RollPhase.PASS and not r.has_damage, Route.ANIMATE),
        ("wait_for_damage", lambda r, s: s.play_on_damage, Route.SKIP),
        ("damage_roll", lambda r, s: r.roll_phase == RollPhase.DAMAGE, Route.SKIP),
        ("attack_roll", lambda r, s: r.roll_phase == RollPhase.ATTACK, Route.ANIMATE),
        ("no_attack", lambda r, s: not r.has_attack, Route.ANIMATE),
    ]

    @classmethod
    def route(cls, record: ActionRecord, settings: DispatchSettings) -> Route:
        for _name, condition, route in cls._ROUTING_RULES:
            if condition(record, settings):
                return route
        # 有攻击的物品卡片：等待攻击检定事件
        return Route.SKIP

    @classmethod
    def explain(cls, record: ActionRecord, settings: DispatchSettings) -> str:
        """返回命中的规则名（用于调试）"""
        for name, condition, _route in cls._ROUTING_RULES:
            if condition(record, settings):
                return name
        return "default"
