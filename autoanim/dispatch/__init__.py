"""
动画调度系统 (Animation Dispatch)

五层流水线：
- Normalizer: 原生事件 → ActionRecord（不适用时返回 None）
- Matcher: 有序规则表 → AnimationDefinition
- Geometry: 距离 / 尺寸 / 高度 / 伪来源点
- Compiler: 纯函数编译为有序特效指令
- Guard: 屏蔽开关与重复播放保护
"""

from .constants import Phase, Route, GuardState, DispatchStatus, PlacementKind, TimingMode
from .host import GridSpec, TokenGeometry, EffectBounds, RenderedEffect, SceneQuery, RenderingEngine, StaticScene
from .normalizer import ActionNormalizer
from .router import WorkflowRouter
from .registry import AnimationRegistry, DefinitionError
from .matcher import RuleMatcher, MatchResult
from .geometry import GeometryResolver, ResolvedGeometry, TargetGeometry, TemplatePlacement
from .compiler import SequenceCompiler, SequenceInstruction, CompiledSequence, Placement, Timing
from .guard import PlaybackGuard
from .scheduler import PlaybackScheduler
from .renderer import JSONRenderer, RecordingRenderer
from .dispatcher import AnimationDispatcher
