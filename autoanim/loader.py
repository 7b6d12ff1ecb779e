"""
目录加载器 (Loader)
负责从 YAML / JSON 文件读取动画定义、分类与设置，并解析为 Pydantic 模型
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import ValidationError

from .config import Config, DispatchSettings
from .models import AnimationDefinition, CategorySet

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class CatalogLoader:
    """动画目录加载器 - 配置表驱动中心"""

    def __init__(self, data_dir: PathLike = "data") -> None:
        """
        Args:
            data_dir: 数据文件目录路径
        """
        self.data_dir: Path = Path(data_dir)

    def load_all(self):
        """
        Returns:
            (definitions, categories, settings)
        """
        definitions = self.load_definitions(self.data_dir / "animations.yaml")
        categories = self.load_categories(self.data_dir / "item_categories.json")
        settings_path = self.data_dir / "settings.yaml"
        settings = self.load_settings(settings_path) if settings_path.exists() else DispatchSettings()
        return definitions, categories, settings

    @staticmethod
    def _require(path: PathLike) -> Path:
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"配置文件不存在: {file_path}")
        return file_path

    @staticmethod
    def _read_yaml(path: PathLike) -> Any:
        with open(CatalogLoader._require(path), 'r', encoding='utf-8') as f:
            return yaml.safe_load(f)

    @staticmethod
    def load_definitions(path: PathLike) -> List[AnimationDefinition]:
        """YAML 顶层键 animations 下的定义列表；单条解析失败只记录并跳过"""
        data = CatalogLoader._read_yaml(path)
        if not data or 'animations' not in data:
            logger.warning("No animations found in %s", path)
            return []

        definitions = []
        for item in data['animations']:
            try:
                definitions.append(AnimationDefinition.model_validate(item))
            except ValidationError as e:
                name = item.get('name', 'unknown') if isinstance(item, dict) else 'unknown'
                logger.warning("加载动画定义失败: %s. 错误: %s", name, e)
        return definitions

    @staticmethod
    def load_categories(path: PathLike) -> List[CategorySet]:
        """
        JSON 对象：分类名 -> {menu, definition, items}
        按 Config.CATEGORY_ORDER 排序，未列出的分类保持文件中的顺序排在后面。
        """
        with open(CatalogLoader._require(path), 'r', encoding='utf-8') as f:
            raw: Dict[str, Any] = json.load(f)

        categories: Dict[str, CategorySet] = {}
        for name, item in raw.items():
            try:
                categories[name] = CategorySet.model_validate({"name": name, **item})
            except (ValidationError, TypeError) as e:
                logger.warning("加载分类失败: %s. 错误: %s", name, e)

        ordered = [categories[n] for n in Config.CATEGORY_ORDER if n in categories]
        ordered += [c for n, c in categories.items() if n not in Config.CATEGORY_ORDER]
        return ordered

    @staticmethod
    def load_settings(path: PathLike) -> DispatchSettings:
        data = CatalogLoader._read_yaml(path) or {}
        return DispatchSettings.model_validate(data)
