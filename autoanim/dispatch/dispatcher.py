"""
调度入口 - 串联 规范化 → 路由 → 屏蔽 → 匹配 → 几何 → 编译 → 渲染

    record ──▶ PlaybackGuard ──▶ RuleMatcher ──▶ GeometryResolver ──▶ SequenceCompiler ──▶ RenderingEngine
                 (ARMED?)          (no match?)     (-1 哨兵)              (纯函数)              (异步)

同步部分不会挂起；只有物品音效延迟、等待模板、渲染调用三处会让出控制权。
"""

import asyncio
import logging
import random
from collections import Counter
from typing import Any, Callable, Mapping, Optional

from ..adapters.base import ActionSourceAdapter
from ..config import DispatchSettings
from ..models import ActionRecord, TemplateData
from .compiler import CompiledSequence, SequenceCompiler
from .constants import DispatchStatus, Phase, Route
from .geometry import GeometryResolver
from .guard import PlaybackGuard
from .host import RenderingEngine, SceneQuery
from .matcher import RuleMatcher
from .normalizer import ActionNormalizer
from .registry import AnimationRegistry
from .router import WorkflowRouter
from .scheduler import PlaybackScheduler

logger = logging.getLogger(__name__)


class AnimationDispatcher:

    def __init__(self,
                 registry: AnimationRegistry,
                 scene: SceneQuery,
                 renderer: RenderingEngine,
                 guard: Optional[PlaybackGuard] = None,
                 scheduler: Optional[PlaybackScheduler] = None,
                 rng: Optional[random.Random] = None,
                 notifier: Optional[Callable[[str], None]] = None):
        self.registry = registry
        self.scene = scene
        self.renderer = renderer
        self.guard = guard if guard is not None else PlaybackGuard()
        self.scheduler = scheduler or PlaybackScheduler()
        self.matcher = RuleMatcher(registry)
        self.resolver = GeometryResolver(scene, rng)
        self.compiler = SequenceCompiler()
        self._notifier = notifier or logger.warning
        self._disabled_reported = False
        # origin -> 进行中的调度数
        self._in_flight: Counter = Counter()

    # ------------------------------------------------------------------ #
    # 入口
    # ------------------------------------------------------------------ #

    async def handle_event(self,
                           adapter: ActionSourceAdapter,
                           payload: Mapping[str, Any],
                           settings: DispatchSettings,
                           local_user_id: str) -> Optional[DispatchStatus]:
        """
        宿主事件入口

        Returns:
            None 表示该事件不适用（其他用户 / 长休 / 缺少物品 / 路由跳过）
        """
        record = ActionNormalizer(local_user_id).normalize(adapter, payload)
        if record is None:
            return None
        if WorkflowRouter.route(record, settings) == Route.SKIP:
            logger.debug("'%s' skipped by workflow rule %s",
                         record.normalized_name, WorkflowRouter.explain(record, settings))
            return None
        return await self.dispatch(record, settings)

    def submit(self, record: ActionRecord, settings: DispatchSettings) -> asyncio.Task:
        """把一次调度作为独立任务提交；任务失败只记录日志"""
        return self.scheduler.spawn(self.dispatch(record, settings), name=record.origin_id)

    async def dispatch(self, record: ActionRecord, settings: DispatchSettings) -> DispatchStatus:
        if not settings.enabled:
            if not self._disabled_reported:
                self._disabled_reported = True
                self._notifier(f"{settings.module_name} is disabled, animations will not play")
            return DispatchStatus.SUPPRESSED

        origin = record.origin_id
        self._in_flight[origin] += 1
        try:
            return await self._dispatch(record, settings)
        finally:
            self._in_flight[origin] -= 1
            if not self._in_flight[origin]:
                del self._in_flight[origin]
                self.guard.clear_retraction(origin)

    async def _dispatch(self, record: ActionRecord, settings: DispatchSettings) -> DispatchStatus:
        origin = record.origin_id
        scene_id = self.scene.scene_id
        if self.guard.is_retracted(origin):
            return DispatchStatus.SUPPRESSED
        if self.guard.evaluate(record, scene_id, settings):
            return DispatchStatus.SUPPRESSED

        sound = record.item_flags.sound
        if sound is not None:
            await self.scheduler.after(sound.delay)
            await self.renderer.play_sound(sound.file, sound.volume)

        match = self.matcher.match(record)
        if match is None:
            return DispatchStatus.NO_MATCH
        definition = match.definition
        logger.debug("'%s' matched by %s", record.normalized_name, match.rule)

        template = record.template_data
        if definition.is_template_animation and template is None:
            template = await self.scheduler.wait_for_template(origin, settings.template_timeout)
            if template is None:
                return DispatchStatus.SUPPRESSED

        targets = record.all_targets if settings.play_on_miss or record.force_miss else record.hit_targets
        geometry = self.resolver.resolve(record, definition, targets, settings, template)
        occupied = {
            t.id for t in targets
            if self.scene.has_effect(origin, t.id) or self.guard.has_target(origin, scene_id, t.id)
        }
        instructions = self.compiler.compile(definition, geometry, record, settings, occupied)
        if not instructions:
            logger.debug("Nothing to play for '%s'", record.normalized_name)
            return DispatchStatus.SUPPRESSED

        # 撤回发生在挂起期间时，未发出的序列整体丢弃
        if self.guard.is_retracted(origin):
            return DispatchStatus.SUPPRESSED

        sequence = CompiledSequence(
            origin=origin,
            scene_id=scene_id,
            module_name=settings.module_name,
            soft_fail=settings.soft_fail,
            instructions=instructions,
        )
        played = [i for i in sequence.by_phase(Phase.TARGET) if i.target_id]
        self.guard.mark_played(origin, scene_id, [i.target_id for i in played])
        try:
            await self.renderer.play(sequence)
        finally:
            self.guard.release(origin, scene_id, [i.target_id for i in played if not i.persist])
        return DispatchStatus.SUCCESS

    # ------------------------------------------------------------------ #
    # 宿主回调
    # ------------------------------------------------------------------ #

    def template_created(self, template: TemplateData, origin: Optional[str] = None) -> bool:
        return self.scheduler.template_created(template, origin)

    def effect_removed(self, origin: str) -> None:
        self.guard.effect_removed(origin, self.scene.scene_id)

    def scene_unloaded(self, scene_id: Optional[str] = None) -> None:
        self.guard.scene_unloaded(scene_id or self.scene.scene_id)

    def retract(self, origin: str) -> None:
        """撤回一次动作：取消模板等待，丢弃尚未发出的序列。只作用于进行中的调度"""
        if origin not in self._in_flight:
            return
        self.guard.retract(origin)
        self.scheduler.cancel(origin)
