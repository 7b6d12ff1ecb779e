"""
序列编译层 - 动画定义 + 几何结果 → 有序特效指令列表

职责：把每个特效层编译成声明式的放置指令，交给外部渲染引擎。
- 纯函数：不读取任何全局状态，也不累积隐式状态
- 阶段顺序：source < secondary < target；阶段内按 all_targets 顺序
- 要么返回完整列表，要么返回空列表；单个目标被跳过不会中断整批
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set

from ..config import Config, DispatchSettings
from ..models import ActionRecord, Anchor, AnimationDefinition, EffectLayerSpec, Menu, Point, PresetType
from .constants import Phase, PlacementKind, TimingMode
from .geometry import GeometryResolver, ResolvedGeometry, TargetGeometry


@dataclass(frozen=True)
class Placement:
    """特效落点：token / 未命中点 / 画布坐标"""
    kind: PlacementKind
    token_id: Optional[str] = None
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def token(cls, token_id: str) -> "Placement":
        return cls(kind=PlacementKind.TOKEN, token_id=token_id)

    @classmethod
    def miss(cls, token_id: str) -> "Placement":
        return cls(kind=PlacementKind.MISS_SPOT, token_id=token_id)

    @classmethod
    def point(cls, point: Point) -> "Placement":
        return cls(kind=PlacementKind.POINT, x=point.x, y=point.y)

    def describe(self):
        if self.kind == PlacementKind.TOKEN:
            return self.token_id
        if self.kind == PlacementKind.MISS_SPOT:
            return f"{Config.MISS_SPOT_PREFIX} {self.token_id}"
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class Timing:
    mode: TimingMode = TimingMode.DELAY
    ms: int = 0

    @classmethod
    def delay(cls, ms: int) -> "Timing":
        return cls(TimingMode.DELAY, ms)

    @classmethod
    def wait(cls, ms: int) -> "Timing":
        return cls(TimingMode.WAIT, ms)


@dataclass
class SequenceInstruction:
    """单条特效放置指令"""
    phase: Phase
    role: str
    origin: str
    name: str
    location: Placement
    file: str = ""
    kind: str = "effect"        # effect / sound
    source_point: Optional[Placement] = None
    attach: bool = False
    persist: bool = False
    bind_visibility: bool = True
    bind_alpha: bool = True
    anchor: Anchor = Anchor()
    size: float = 1.0
    elevation: int = Config.DEFAULT_ELEVATION - 1
    absolute: bool = False
    fade_in: int = 0
    fade_out: Optional[int] = None
    opacity: float = 1.0
    playback_rate: float = 1.0
    repeats: int = 1
    repeat_delay: int = 0
    z_index: int = 1
    timing: Timing = Timing()
    mask_token: Optional[str] = None
    rotate_towards: Optional[str] = None
    rotation: float = 0.0
    target_id: Optional[str] = None
    volume: float = 0.0


@dataclass
class CompiledSequence:
    origin: str
    scene_id: str
    module_name: str
    soft_fail: bool
    instructions: List[SequenceInstruction] = field(default_factory=list)

    def by_phase(self, phase: Phase) -> List[SequenceInstruction]:
        return [i for i in self.instructions if i.phase == phase]


class SequenceCompiler:

    def compile(self,
                definition: AnimationDefinition,
                geometry: ResolvedGeometry,
                record: ActionRecord,
                settings: DispatchSettings,
                occupied: Optional[Set[str]] = None) -> List[SequenceInstruction]:
        """
        Args:
            occupied: 已经带有本 origin 特效的目标 id，目标层对这些目标跳过
        """
        occupied = occupied or set()
        instructions: List[SequenceInstruction] = []

        instructions.extend(self._overlay(record, settings))

        if definition.source is not None and definition.source.enabled:
            instructions.extend(self._source(definition.source, geometry, record, aura=definition.is_aura))

        if definition.is_template_animation:
            instructions.extend(self._template(definition, geometry, record))
        elif definition.is_teleport:
            instructions.extend(self._teleport(definition, record))
        else:
            instructions.extend(self._secondary(definition, geometry, record))
            instructions.extend(self._targets(definition, geometry, record, occupied))

        # 同阶段内保持插入顺序
        instructions.sort(key=lambda i: i.phase)
        return instructions

    # ------------------------------------------------------------------ #
    # 通用
    # ------------------------------------------------------------------ #

    @staticmethod
    def _effect(spec: EffectLayerSpec,
                role: str,
                phase: Phase,
                record: ActionRecord,
                location: Placement,
                size: float,
                elevation: int,
                timing: Timing,
                **extra) -> SequenceInstruction:
        o = spec.options
        return SequenceInstruction(
            phase=phase,
            role=role,
            origin=record.origin_id,
            name=record.normalized_name,
            location=location,
            file=spec.file,
            anchor=o.anchor,
            size=size,
            elevation=elevation,
            absolute=o.is_absolute,
            fade_in=o.fade_in,
            # 素材自身已淡出，不再叠加淡出
            fade_out=None if spec.video.is_complete else o.fade_out,
            opacity=o.opacity,
            playback_rate=o.playback_rate,
            repeats=o.repeat,
            repeat_delay=o.repeat_delay,
            z_index=o.z_index,
            timing=timing,
            **extra,
        )

    @staticmethod
    def _sound(spec: EffectLayerSpec, role: str, phase: Phase, record: ActionRecord) -> List[SequenceInstruction]:
        if spec.sound is None:
            return []
        return [SequenceInstruction(
            phase=phase,
            role=role,
            origin=record.origin_id,
            name=record.normalized_name,
            location=Placement.token(record.source_token.id),
            file=spec.sound.file,
            kind="sound",
            timing=Timing.delay(spec.sound.delay),
            volume=spec.sound.volume,
        )]

    @staticmethod
    def _timing(spec: EffectLayerSpec) -> Timing:
        o = spec.options
        return Timing.wait(o.delay) if o.is_wait else Timing.delay(o.delay)

    def _overlay(self, record: ActionRecord, settings: DispatchSettings) -> List[SequenceInstruction]:
        """暴击 / 大失败覆盖特效，放在来源阶段最前"""
        if record.is_critical and settings.enable_critical and settings.critical_animation:
            file = settings.critical_animation
        elif record.is_fumble and settings.enable_critical_miss and settings.critical_miss_animation:
            file = settings.critical_miss_animation
        else:
            return []
        return [SequenceInstruction(
            phase=Phase.SOURCE,
            role="overlay",
            origin=record.origin_id,
            name=record.normalized_name,
            location=Placement.token(record.source_token.id),
            file=file,
            absolute=True,
        )]

    # ------------------------------------------------------------------ #
    # 各阶段
    # ------------------------------------------------------------------ #

    def _source(self, spec: EffectLayerSpec, geometry: ResolvedGeometry, record: ActionRecord,
                aura: bool = False) -> List[SequenceInstruction]:
        o = spec.options
        source_id = record.source_token.id

        if o.animation_source and o.fake_location is not None:
            location, attach = Placement.point(o.fake_location), False
        else:
            location, attach = Placement.token(source_id), True

        instruction = self._effect(
            spec, "source", Phase.SOURCE, record, location,
            size=geometry.source_size,
            elevation=GeometryResolver.elevation(o),
            timing=self._timing(spec),
            attach=attach,
            persist=o.persistent or aura,
            mask_token=source_id if o.is_masked else None,
        )
        return self._sound(spec, "source", Phase.SOURCE, record) + [instruction]

    def _secondary(self, definition: AnimationDefinition, geometry: ResolvedGeometry,
                   record: ActionRecord) -> List[SequenceInstruction]:
        spec = definition.secondary
        if spec is None or not spec.enabled or not geometry.targets:
            return []
        o = spec.options
        target_enabled = definition.target is not None and definition.target.enabled
        origin_point = (Placement.point(geometry.fake_source) if geometry.fake_source is not None
                        else Placement.token(record.source_token.id))

        found = self._sound(spec, "secondary", Phase.SECONDARY, record)
        last = len(geometry.targets) - 1
        for index, geo in enumerate(geometry.targets):
            # 只有最后一个目标可以等待，避免把并行的投射物串行化
            if index == last and o.is_wait and target_enabled:
                timing = Timing.wait(o.delay)
            else:
                timing = Timing.delay(o.delay)
            found.append(self._effect(
                spec, "secondary", Phase.SECONDARY, record,
                self._landing(geo, record),
                size=geo.sizes.get("secondary", 1.0),
                elevation=geo.elevations.get("secondary", o.elevation - 1),
                timing=timing,
                source_point=origin_point if o.stretch else None,
                target_id=geo.target.id,
                mask_token=geo.target.id if o.is_masked else None,
                rotate_towards=record.source_token.id if o.rotate_source else None,
                rotation=180.0 if o.rotate_source else 0.0,
            ))
        return found

    def _targets(self, definition: AnimationDefinition, geometry: ResolvedGeometry,
                 record: ActionRecord, occupied: Set[str]) -> List[SequenceInstruction]:
        found: List[SequenceInstruction] = []
        for geo in geometry.targets:
            if geo.target.id in occupied:
                continue
            role, spec = self._target_layer(definition, geo, record)
            if spec is None:
                continue
            o = spec.options
            missed = self._missed(geo, record)
            extra = {}
            if role == "range_switch":
                extra["source_point"] = Placement.token(record.source_token.id)
            if o.persistent and not missed:
                location = Placement.token(geo.target.id)
                extra.update(
                    attach=True,
                    persist=True,
                    bind_visibility=not o.unbind_visibility,
                    bind_alpha=not o.unbind_alpha,
                )
            else:
                location = self._landing(geo, record)

            found.extend(self._sound(spec, role, Phase.TARGET, record))
            found.append(self._effect(
                spec, role, Phase.TARGET, record, location,
                size=geo.sizes.get(role, 1.0),
                elevation=geo.elevations.get(role, o.elevation - 1),
                timing=Timing.delay(o.delay),
                target_id=geo.target.id,
                mask_token=geo.target.id if o.is_masked else None,
                rotate_towards=record.source_token.id if o.rotate_source else None,
                rotation=180.0 if o.rotate_source else 0.0,
                **extra,
            ))
        return found

    @staticmethod
    def _target_layer(definition: AnimationDefinition, geo: TargetGeometry, record: ActionRecord):
        """
        近战超出触及范围时使用投掷变体。
        距离未知 (-1) 时不参与距离判断，回退到普通目标层。
        """
        switch = definition.range_switch
        if (definition.menu == Menu.MELEE and switch is not None and switch.enabled
                and geo.distance_known and geo.distance > Config.MELEE_BASE_RANGE + record.reach):
            return "range_switch", switch
        spec = definition.target
        if spec is None or not spec.enabled:
            return "target", None
        return "target", spec

    @staticmethod
    def _missed(geo: TargetGeometry, record: ActionRecord) -> bool:
        return record.force_miss or not geo.hit

    def _landing(self, geo: TargetGeometry, record: ActionRecord) -> Placement:
        if self._missed(geo, record):
            return Placement.miss(geo.target.id)
        return Placement.token(geo.target.id)

    def _teleport(self, definition: AnimationDefinition, record: ActionRecord) -> List[SequenceInstruction]:
        spec = definition.target
        if spec is None or not spec.enabled or record.destination is None:
            return []
        o = spec.options
        return self._sound(spec, "target", Phase.TARGET, record) + [self._effect(
            spec, "target", Phase.TARGET, record, Placement.point(record.destination),
            size=GeometryResolver.size(o, 1.0),
            elevation=GeometryResolver.elevation(o),
            timing=Timing.delay(o.delay),
        )]

    def _template(self, definition: AnimationDefinition, geometry: ResolvedGeometry,
                  record: ActionRecord) -> List[SequenceInstruction]:
        placement = geometry.template
        if placement is None:
            return []
        found: List[SequenceInstruction] = []

        secondary = definition.secondary
        if (definition.preset_type == PresetType.PRO_TO_TEMP
                and secondary is not None and secondary.enabled):
            origin_point = (Placement.point(geometry.fake_source) if geometry.fake_source is not None
                            else Placement.token(record.source_token.id))
            o = secondary.options
            found.extend(self._sound(secondary, "secondary", Phase.SECONDARY, record))
            found.append(self._effect(
                secondary, "secondary", Phase.SECONDARY, record, Placement.point(placement.location),
                size=GeometryResolver.size(o, 1.0),
                elevation=GeometryResolver.elevation(o),
                timing=self._timing(secondary),
                source_point=origin_point,
            ))

        spec = definition.target
        if spec is not None and spec.enabled:
            o = spec.options
            found.extend(self._sound(spec, "target", Phase.TARGET, record))
            # 锥形 / 射线：从模板原点拉伸到终点
            if placement.stretch_to is not None:
                location = Placement.point(placement.stretch_to)
                source_point = Placement.point(placement.location)
            else:
                location, source_point = Placement.point(placement.location), None
            found.append(self._effect(
                spec, "target", Phase.TARGET, record, location,
                size=placement.size,
                elevation=GeometryResolver.elevation(o),
                timing=Timing.delay(o.delay),
                persist=o.persistent,
                rotation=placement.rotation,
                source_point=source_point,
            ))
        return found
