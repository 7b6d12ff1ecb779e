"""
autoanim 包初始化文件
"""

from .config import Config, DispatchSettings
from .models import ActionRecord, AnimationDefinition, CategorySet, TokenRef, TemplateData, RollPhase, Menu, PresetType
from .loader import CatalogLoader

__all__ = [
    'Config',
    'DispatchSettings',
    'ActionRecord',
    'AnimationDefinition',
    'CategorySet',
    'TokenRef',
    'TemplateData',
    'RollPhase',
    'Menu',
    'PresetType',
    'CatalogLoader',
]
