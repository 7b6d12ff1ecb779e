"""
规则匹配层 - ActionRecord → AnimationDefinition

匹配优先级（严格有序，首个成功的规则胜出）：
1. [pre]  item_override  物品自带的自定义动画（override 开启）
2. [pre]  preset_flag    物品标记了 preset（传送 / 模板 / 爆炸）且 override 开启
3. exact_name            规范化名称精确匹配
4. category:<name>       按固定顺序检查分类成员
5. [post] keyword        名称包含关键字（吟游激励、猎人印记 ...）

无匹配是最常见的正常结果，不是错误。相同输入 + 相同注册表状态 → 相同结果。
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..models import ActionRecord, AnimationDefinition, CategorySet
from .registry import AnimationRegistry

logger = logging.getLogger(__name__)


@dataclass
class MatchRule:
    name: str
    resolve: Callable[[ActionRecord, AnimationRegistry], Optional[AnimationDefinition]]


@dataclass
class MatchResult:
    definition: AnimationDefinition
    rule: str


def _item_override(record: ActionRecord, registry: AnimationRegistry) -> Optional[AnimationDefinition]:
    flags = record.item_flags
    if flags.override and flags.definition is not None and registry.usable(flags.definition):
        return flags.definition
    return None


def _preset_flag(record: ActionRecord, registry: AnimationRegistry) -> Optional[AnimationDefinition]:
    flags = record.item_flags
    if flags.override and flags.preset_type is not None:
        return registry.preset(flags.preset_type)
    return None


def _exact_name(record: ActionRecord, registry: AnimationRegistry) -> Optional[AnimationDefinition]:
    return registry.exact(record.normalized_name)


def _keyword(record: ActionRecord, registry: AnimationRegistry) -> Optional[AnimationDefinition]:
    return registry.keyword(record.normalized_name)


def _category_rule(category: CategorySet) -> MatchRule:
    def resolve(record: ActionRecord, registry: AnimationRegistry) -> Optional[AnimationDefinition]:
        if record.normalized_name in category.items:
            return registry.category_definition(category)
        return None
    return MatchRule(name=f"category:{category.name}", resolve=resolve)


class RuleMatcher:
    """
    有序规则表匹配器

    分类规则在每次调用时按注册表中的分类顺序展开，
    因此更新分类后无需重建匹配器。
    """

    PRE_RULES = [
        MatchRule("item_override", _item_override),
        MatchRule("preset_flag", _preset_flag),
        MatchRule("exact_name", _exact_name),
    ]
    POST_RULES = [
        MatchRule("keyword", _keyword),
    ]

    def __init__(self, registry: AnimationRegistry):
        self.registry = registry

    def rules(self) -> List[MatchRule]:
        categories = [_category_rule(c) for c in self.registry.categories]
        return self.PRE_RULES + categories + self.POST_RULES

    def match(self, record: ActionRecord) -> Optional[MatchResult]:
        for rule in self.rules():
            definition = rule.resolve(record, self.registry)
            if definition is not None and definition.layers():
                return MatchResult(definition=definition, rule=rule.name)
        logger.debug("No animation matched for '%s'", record.normalized_name)
        return None
