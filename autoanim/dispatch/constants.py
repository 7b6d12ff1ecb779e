from enum import Enum


class Phase(int, Enum):
    """
    特效阶段 - 数值即排序键
    source < secondary < target
    """
    SOURCE = 0
    SECONDARY = 1
    TARGET = 2


class Route(str, Enum):
    """WorkflowRouter 的输出"""
    ANIMATE = "ANIMATE"
    SKIP = "SKIP"


class GuardState(str, Enum):
    """PlaybackGuard 中每个 origin 的状态"""
    IDLE = "IDLE"
    ARMED = "ARMED"     # 触发了屏蔽条件，本次不编译
    PLAYED = "PLAYED"   # 已经向渲染引擎发出过指令


class DispatchStatus(str, Enum):
    """调度入口的三态返回值"""
    SUCCESS = "SUCCESS"
    NO_MATCH = "NO_MATCH"
    SUPPRESSED = "SUPPRESSED"


class PlacementKind(str, Enum):
    TOKEN = "TOKEN"
    MISS_SPOT = "MISS_SPOT"
    POINT = "POINT"


class TimingMode(str, Enum):
    DELAY = "delay"
    WAIT = "wait"   # 等待本特效播放完毕再继续后续指令
