"""
几何与时序解析层

职责：把 动画定义 + 实时 token 位置 变成具体的 距离 / 尺寸 / 高度 / 伪来源点。
任何几何信息缺失都降级为 DISTANCE_UNAVAILABLE (-1)，绝不抛出。
"""

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..config import Config, DispatchSettings
from ..models import ActionRecord, AnimationDefinition, LayerOptions, Point, TemplateData, TokenRef
from .host import GridSpec, SceneQuery, TokenGeometry

logger = logging.getLogger(__name__)


@dataclass
class TargetGeometry:
    target: TokenRef
    distance: float
    footprint_width: float
    hit: bool
    sizes: Dict[str, float] = field(default_factory=dict)
    elevations: Dict[str, int] = field(default_factory=dict)

    @property
    def distance_known(self) -> bool:
        return self.distance != Config.DISTANCE_UNAVAILABLE


@dataclass
class TemplatePlacement:
    """模板特效的落点（size 为网格单位）"""
    location: Point
    size: float
    rotation: float = 0.0
    stretch_to: Optional[Point] = None


@dataclass
class ResolvedGeometry:
    source_size: float = 1.0
    source_elevation: int = Config.DEFAULT_ELEVATION - 1
    targets: List[TargetGeometry] = field(default_factory=list)
    fake_source: Optional[Point] = None
    template: Optional[TemplatePlacement] = None

    def for_target(self, token_id: str) -> Optional[TargetGeometry]:
        for geo in self.targets:
            if geo.target.id == token_id:
                return geo
        return None


class GeometryResolver:
    """
    距离算法：
    - multi_cell (变体 A): 枚举两个 token 占格中心的所有组合，取最小的网格距离
    - edge_offset (变体 B): 按相对方位把起点挪到近侧边缘后测量一次
    两者结果都除以场景每格距离，归一化为抽象网格单位。
    """

    LAYER_ROLES = ("secondary", "target", "range_switch")

    def __init__(self, scene: SceneQuery, rng: Optional[random.Random] = None):
        self.scene = scene
        self.rng = rng or random.Random()

    def resolve(self,
                record: ActionRecord,
                definition: AnimationDefinition,
                targets: List[TokenRef],
                settings: DispatchSettings,
                template: Optional[TemplateData] = None) -> ResolvedGeometry:
        grid = self.scene.grid()
        source_geo = self.scene.token_geometry(record.source_token)
        source_width = source_geo.width if source_geo else 1.0

        result = ResolvedGeometry()
        if definition.source is not None:
            result.source_size = self.size(definition.source.options, source_width)
            result.source_elevation = self.elevation(definition.source.options)

        for target in targets:
            target_geo = self.scene.token_geometry(target)
            width = target_geo.width if target_geo else 1.0
            geo = TargetGeometry(
                target=target,
                distance=self.distance(record.source_token, target, settings.distance_mode),
                footprint_width=width,
                hit=record.is_hit(target),
            )
            for role in self.LAYER_ROLES:
                spec = getattr(definition, role)
                if spec is not None:
                    geo.sizes[role] = self.size(spec.options, width)
                    geo.elevations[role] = self.elevation(spec.options)
            result.targets.append(geo)

        secondary = definition.secondary
        if secondary is not None and secondary.options.from_effect_origin:
            result.fake_source = self.fake_source(record)

        if template is not None and grid is not None:
            result.template = self.template_placement(template, grid)

        return result

    # ------------------------------------------------------------------ #
    # 距离
    # ------------------------------------------------------------------ #

    def distance(self, source: TokenRef, target: TokenRef, mode: str = "auto") -> float:
        grid = self.scene.grid()
        a = self.scene.token_geometry(source)
        b = self.scene.token_geometry(target)
        if grid is None or a is None or b is None:
            return Config.DISTANCE_UNAVAILABLE

        if mode == "edge_offset" or (mode == "auto" and not grid.gridded):
            return self.edge_offset_distance(a, b, grid)
        return self.multi_cell_distance(a, b, grid)

    @staticmethod
    def _cell_offsets(extent: float) -> List[float]:
        """占格内每个格子中心的偏移（格）；不足一格的 token 取自身中心"""
        offsets = []
        offset = 0.5 if extent >= 1 else extent / 2
        while offset < extent:
            offsets.append(offset)
            offset += 1
        return offsets

    @classmethod
    def _cell_centers(cls, token: TokenGeometry, grid: GridSpec) -> List[Tuple[float, float]]:
        return [
            grid.cell_center(round(token.x + grid.size * ox), round(token.y + grid.size * oy))
            for ox in cls._cell_offsets(token.width)
            for oy in cls._cell_offsets(token.height)
        ]

    @classmethod
    def multi_cell_distance(cls, a: TokenGeometry, b: TokenGeometry, grid: GridSpec) -> float:
        origins = cls._cell_centers(a, grid)
        dests = cls._cell_centers(b, grid)
        measured = [grid.measure(o, d) for o in origins for d in dests]
        if not measured or grid.distance <= 0:
            return Config.DISTANCE_UNAVAILABLE
        return min(measured) / grid.distance

    @staticmethod
    def edge_offset_distance(a: TokenGeometry, b: TokenGeometry, grid: GridSpec) -> float:
        if grid.distance <= 0:
            return Config.DISTANCE_UNAVAILABLE

        is_left_of = a.x + a.pixel_width(grid) <= b.x
        is_right_of = a.x >= b.x + b.pixel_width(grid)
        is_above = a.y + a.pixel_height(grid) <= b.y
        is_below = a.y >= b.y + b.pixel_height(grid)

        x1, x2, y1, y2 = a.x, b.x, a.y, b.y
        if is_left_of:
            x1 += (a.width - 1) * grid.size
        elif is_right_of:
            x2 += (b.width - 1) * grid.size
        if is_above:
            y1 += (a.height - 1) * grid.size
        elif is_below:
            y2 += (b.height - 1) * grid.size

        return grid.measure((x1, y1), (x2, y2)) / grid.distance

    # ------------------------------------------------------------------ #
    # 尺寸 / 高度
    # ------------------------------------------------------------------ #

    @staticmethod
    def size(options: LayerOptions, footprint_width: float) -> float:
        """
        半径类: 2 × size，或 2 × size + 目标占格宽度（包裹目标）
        非半径类: 1.5 × size × 目标占格宽度
        常量与素材库校准，不要修改。
        """
        if options.is_radius:
            diameter = Config.RADIUS_FACTOR * options.size
            if options.add_token_width:
                diameter += footprint_width
            return diameter
        return footprint_width * Config.NON_RADIUS_FACTOR * options.size

    @staticmethod
    def elevation(options: LayerOptions) -> int:
        """未固定高度时默认渲染在 token 平面下一层"""
        return options.elevation if options.is_absolute else options.elevation - 1

    # ------------------------------------------------------------------ #
    # 伪来源点 / 模板
    # ------------------------------------------------------------------ #

    def fake_source(self, record: ActionRecord) -> Optional[Point]:
        """
        在场景中最近一次同名特效的包围盒（向内收缩半格）里随机取点。
        找不到时返回 None，由调用方回退到真实来源 token。
        """
        grid = self.scene.grid()
        bounds = self.scene.latest_effect(record.normalized_name)
        if bounds is None or grid is None:
            return None

        half = grid.size / 2
        x_min = bounds.x - bounds.width / 2 + half
        x_max = bounds.x + bounds.width / 2 - half
        y_min = bounds.y - bounds.height / 2 + half
        y_max = bounds.y + bounds.height / 2 - half
        if x_min > x_max:
            x_min = x_max = bounds.x
        if y_min > y_max:
            y_min = y_max = bounds.y
        return Point(x=self._random_between(x_min, x_max), y=self._random_between(y_min, y_max))

    def _random_between(self, low: float, high: float) -> int:
        return math.floor(self.rng.random() * (high - low) + low)

    @staticmethod
    def template_placement(template: TemplateData, grid: GridSpec) -> Optional[TemplatePlacement]:
        if grid.distance <= 0:
            return None
        pixels_per_unit = grid.size / grid.distance
        origin = Point(x=template.x, y=template.y)
        radians = math.radians(template.direction)
        shape = template.shape.lower()

        if shape == "circle":
            return TemplatePlacement(location=origin, size=2 * template.distance / grid.distance)

        if shape in ("cone", "ray"):
            length = template.distance * pixels_per_unit
            end = Point(x=template.x + math.cos(radians) * length, y=template.y + math.sin(radians) * length)
            return TemplatePlacement(
                location=origin,
                size=template.distance / grid.distance,
                rotation=template.direction,
                stretch_to=end,
            )

        if shape == "rect":
            # rect 的 distance 是对角线长度，direction 是对角线方向
            width = math.cos(radians) * template.distance * pixels_per_unit
            height = math.sin(radians) * template.distance * pixels_per_unit
            center = Point(x=template.x + width / 2, y=template.y + height / 2)
            return TemplatePlacement(location=center, size=max(abs(width), abs(height)) / grid.size)

        logger.debug("Unknown template shape '%s'", template.shape)
        return None
