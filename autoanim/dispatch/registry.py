import logging
from typing import Callable, Dict, List, Optional, Set, Tuple

from ..models import AnimationDefinition, CategorySet, MatchMode, PresetType

logger = logging.getLogger(__name__)


class DefinitionError(ValueError):
    """动画定义配置错误（空特效层、缺少素材文件等）"""


class AnimationRegistry:
    """
    Registry for Animation Definitions and the ordered category sets.

    - 精确匹配定义：match_key -> AnimationDefinition
    - 关键字定义（match_mode=contains）：按注册顺序保存
    - 分类：有序列表，先匹配到的分类胜出

    配置错误的定义只通知一次，之后直接跳过，不会重试。
    """

    def __init__(self, notifier: Optional[Callable[[str], None]] = None):
        self._exact: Dict[str, AnimationDefinition] = {}
        self._keywords: List[AnimationDefinition] = []
        self._categories: List[CategorySet] = []
        self._rejected: Dict[str, List[str]] = {}
        self._reported: Set[str] = set()
        self._notifier = notifier or logger.warning

    @property
    def categories(self) -> List[CategorySet]:
        return self._categories

    @property
    def rejected(self) -> Dict[str, List[str]]:
        """被拒绝的定义 match_key -> 问题列表"""
        return self._rejected

    def __len__(self) -> int:
        return len(self._exact) + len(self._keywords)

    # ------------------------------------------------------------------ #
    # 注册
    # ------------------------------------------------------------------ #

    def register(self, definition: AnimationDefinition) -> bool:
        try:
            self.validate(definition)
        except DefinitionError as e:
            self._reject(definition.match_key, str(e))
            return False

        if definition.match_mode == MatchMode.CONTAINS:
            self._keywords.append(definition)
        else:
            if definition.match_key in self._exact:
                logger.debug("Definition '%s' replaced", definition.match_key)
            self._exact[definition.match_key] = definition
        return True

    def register_all(self, definitions: List[AnimationDefinition]) -> int:
        return sum(1 for d in definitions if self.register(d))

    def set_categories(self, categories: List[CategorySet]) -> None:
        self._categories = list(categories)
        for item, menus in self.category_conflicts():
            logger.warning("Item '%s' appears in categories with different menus: %s", item, ", ".join(menus))

    def load_from_config(self, definitions_path: str, categories_path: Optional[str] = None) -> None:
        """Loads definitions (YAML) and optional categories (JSON) from disk."""
        from ..loader import CatalogLoader

        self.register_all(CatalogLoader.load_definitions(definitions_path))
        if categories_path:
            self.set_categories(CatalogLoader.load_categories(categories_path))

    @staticmethod
    def validate(definition: AnimationDefinition) -> None:
        issues = definition.problems()
        if issues:
            raise DefinitionError("; ".join(issues))

    def usable(self, definition: AnimationDefinition) -> bool:
        """未注册的定义（如物品上的自定义动画）在使用前校验"""
        if not definition.enabled:
            return False
        try:
            self.validate(definition)
        except DefinitionError as e:
            self._reject(definition.match_key, str(e))
            return False
        return True

    def _reject(self, key: str, message: str) -> None:
        self._rejected[key] = message.split("; ")
        if key not in self._reported:
            self._reported.add(key)
            self._notifier(f"Animation definition rejected: {message}")

    # ------------------------------------------------------------------ #
    # 查询
    # ------------------------------------------------------------------ #

    def exact(self, normalized_name: str) -> Optional[AnimationDefinition]:
        definition = self._exact.get(normalized_name)
        if definition is None or not definition.enabled:
            return None
        return definition

    def keyword(self, normalized_name: str) -> Optional[AnimationDefinition]:
        for definition in self._keywords:
            if definition.enabled and definition.match_key and definition.match_key in normalized_name:
                return definition
        return None

    def preset(self, preset_type: PresetType) -> Optional[AnimationDefinition]:
        for definition in list(self._exact.values()) + self._keywords:
            if definition.enabled and definition.preset_type == preset_type:
                return definition
        return None

    def category_definition(self, category: CategorySet) -> Optional[AnimationDefinition]:
        return self.exact(category.definition)

    def category_conflicts(self) -> List[Tuple[str, List[str]]]:
        """同一物品出现在映射到不同菜单的分类中（作者约束，运行时不强制）"""
        seen: Dict[str, List[str]] = {}
        for category in self._categories:
            for item in category.items:
                menus = seen.setdefault(item, [])
                if category.menu.value not in menus:
                    menus.append(category.menu.value)
        return [(item, menus) for item, menus in seen.items() if len(menus) > 1]
