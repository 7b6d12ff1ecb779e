"""
宿主接口 - 调度引擎对外部协作者的全部依赖

- SceneQuery: 读取 token / 网格 / 已渲染特效（只读）
- RenderingEngine: 接收编译好的指令序列并异步播放
- StaticScene: SceneQuery 的内存实现（API、演示与测试使用）
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from ..models import TokenRef

if TYPE_CHECKING:
    from .compiler import CompiledSequence


@dataclass(frozen=True)
class GridSpec:
    """
    场景网格

    Attributes:
        size: 每格像素
        distance: 每格代表的场景距离（如 5 ft）
        diagonals: 斜向规则 equidistant / alternating / euclidean
        gridded: False 表示无网格场景
    """
    size: float = 100.0
    distance: float = 5.0
    units: str = "ft"
    diagonals: str = "equidistant"
    gridded: bool = True

    def cell_center(self, x: float, y: float) -> Tuple[float, float]:
        """像素坐标所在格子的中心"""
        col = math.floor(x / self.size)
        row = math.floor(y / self.size)
        return (col + 0.5) * self.size, (row + 0.5) * self.size

    def measure(self, origin: Tuple[float, float], dest: Tuple[float, float]) -> float:
        """按格计数测量两点距离，返回场景单位"""
        if not self.gridded:
            pixels = math.hypot(dest[0] - origin[0], dest[1] - origin[1])
            return pixels / self.size * self.distance

        dx = round(abs(dest[0] - origin[0]) / self.size)
        dy = round(abs(dest[1] - origin[1]) / self.size)
        if self.diagonals == "alternating":
            # 5-10-5: 每第二个斜向格计两格
            nd = min(dx, dy)
            spaces = nd + nd // 2 + (max(dx, dy) - nd)
        elif self.diagonals == "euclidean":
            spaces = round(math.hypot(dx, dy))
        else:
            spaces = max(dx, dy)
        return spaces * self.distance


@dataclass(frozen=True)
class TokenGeometry:
    """token 的实时几何信息: 左上角像素坐标 + 占格宽高"""
    x: float
    y: float
    width: float = 1.0
    height: float = 1.0
    elevation: float = 0.0

    def pixel_width(self, grid: GridSpec) -> float:
        return self.width * grid.size

    def pixel_height(self, grid: GridSpec) -> float:
        return self.height * grid.size

    def center(self, grid: GridSpec) -> Tuple[float, float]:
        return self.x + self.pixel_width(grid) / 2, self.y + self.pixel_height(grid) / 2


@dataclass(frozen=True)
class EffectBounds:
    """已渲染特效的包围盒（中心点 + 像素宽高）"""
    x: float
    y: float
    width: float
    height: float


@dataclass
class RenderedEffect:
    name: str
    origin: str
    bounds: EffectBounds
    token_id: Optional[str] = None


class SceneQuery(ABC):
    """宿主场景的只读查询面"""

    @property
    @abstractmethod
    def scene_id(self) -> str:
        ...

    @abstractmethod
    def grid(self) -> Optional[GridSpec]:
        ...

    @abstractmethod
    def token_geometry(self, token: TokenRef) -> Optional[TokenGeometry]:
        ...

    @abstractmethod
    def latest_effect(self, name: str) -> Optional[EffectBounds]:
        """场景中最近一次渲染的同名特效"""
        ...

    @abstractmethod
    def has_effect(self, origin: str, token_id: str) -> bool:
        """目标上是否已有来自该 origin 的特效"""
        ...


class RenderingEngine(ABC):
    """渲染引擎: 接收声明式的特效指令序列"""

    @abstractmethod
    async def play(self, sequence: "CompiledSequence") -> None:
        ...

    @abstractmethod
    async def play_sound(self, file: str, volume: float) -> None:
        ...


@dataclass
class StaticScene(SceneQuery):
    """SceneQuery 的内存实现"""
    id: str = "scene"
    grid_spec: Optional[GridSpec] = field(default_factory=GridSpec)
    tokens: Dict[str, TokenGeometry] = field(default_factory=dict)
    effects: List[RenderedEffect] = field(default_factory=list)

    @property
    def scene_id(self) -> str:
        return self.id

    def grid(self) -> Optional[GridSpec]:
        return self.grid_spec

    def token_geometry(self, token: TokenRef) -> Optional[TokenGeometry]:
        return self.tokens.get(token.id)

    def place_token(self, token_id: str, col: float, row: float, width: float = 1.0, height: float = 1.0) -> TokenRef:
        """按格坐标放置 token（需要网格）"""
        size = self.grid_spec.size if self.grid_spec else 100.0
        self.tokens[token_id] = TokenGeometry(x=col * size, y=row * size, width=width, height=height)
        return TokenRef(id=token_id, name=token_id)

    def add_effect(self, effect: RenderedEffect) -> None:
        self.effects.append(effect)

    def remove_effects(self, origin: str) -> int:
        before = len(self.effects)
        self.effects = [e for e in self.effects if e.origin != origin]
        return before - len(self.effects)

    def latest_effect(self, name: str) -> Optional[EffectBounds]:
        for effect in reversed(self.effects):
            if effect.name == name:
                return effect.bounds
        return None

    def has_effect(self, origin: str, token_id: str) -> bool:
        return any(e.origin == origin and e.token_id == token_id for e in self.effects)
