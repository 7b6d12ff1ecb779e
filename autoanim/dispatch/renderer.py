"""
渲染器 - 把编译好的序列转换为声明式 JSON，或记录到内存
提供 JSON 渲染（API / 外部渲染引擎）和内存记录（演示与测试）两种方式
"""

import json
import logging
from typing import List, Optional, Tuple

from .compiler import CompiledSequence, Placement, SequenceInstruction
from .host import RenderingEngine

logger = logging.getLogger(__name__)


class JSONRenderer:
    """JSON渲染器 - 生成外部渲染引擎可直接消费的字典

    使用方式：
        renderer = JSONRenderer()
        payload = renderer.render(sequence)
    """

    @staticmethod
    def _placement(placement: Optional[Placement]):
        if placement is None:
            return None
        return placement.describe()

    def render_instruction(self, instruction: SequenceInstruction) -> dict:
        """渲染单条指令

        Args:
            instruction: 特效或音效指令

        Returns:
            字典格式的指令数据
        """
        if instruction.kind == "sound":
            return {
                "kind": "sound",
                "phase": instruction.phase.name.lower(),
                "role": instruction.role,
                "file": instruction.file,
                "volume": instruction.volume,
                "timing": {"mode": instruction.timing.mode.value, "ms": instruction.timing.ms},
            }

        data = {
            "kind": "effect",
            "phase": instruction.phase.name.lower(),
            "role": instruction.role,
            "file": instruction.file,
            "name": instruction.name,
            "origin": instruction.origin,
            "target": instruction.target_id,

            # 放置
            "location": self._placement(instruction.location),
            "stretch_from": self._placement(instruction.source_point),
            "attach": instruction.attach,
            "persist": instruction.persist,
            "bind_visibility": instruction.bind_visibility,
            "bind_alpha": instruction.bind_alpha,
            "anchor": {"x": instruction.anchor.x, "y": instruction.anchor.y},
            "rotate_towards": instruction.rotate_towards,
            "rotation": instruction.rotation,
            "mask": instruction.mask_token,

            # 外观
            "size": instruction.size,
            "elevation": instruction.elevation,
            "absolute": instruction.absolute,
            "fade_in": instruction.fade_in,
            "opacity": instruction.opacity,
            "playback_rate": instruction.playback_rate,
            "repeats": instruction.repeats,
            "repeat_delay": instruction.repeat_delay,
            "z_index": instruction.z_index,
            "timing": {"mode": instruction.timing.mode.value, "ms": instruction.timing.ms},
        }
        if instruction.fade_out is not None:
            data["fade_out"] = instruction.fade_out
        return data

    def render(self, sequence: CompiledSequence) -> dict:
        """渲染完整序列为字典"""
        return {
            "origin": sequence.origin,
            "scene": sequence.scene_id,
            "module": sequence.module_name,
            "soft_fail": sequence.soft_fail,
            "instructions": [self.render_instruction(i) for i in sequence.instructions],
        }

    def render_json(self, sequence: CompiledSequence, indent: Optional[int] = None) -> str:
        return json.dumps(self.render(sequence), ensure_ascii=False, indent=indent)


class RecordingRenderer(RenderingEngine):
    """
    内存渲染引擎 - 只记录收到的序列与音效，不做任何实际播放
    """

    def __init__(self):
        self.sequences: List[CompiledSequence] = []
        self.sounds: List[Tuple[str, float]] = []

    @property
    def calls(self) -> int:
        return len(self.sequences) + len(self.sounds)

    async def play(self, sequence: CompiledSequence) -> None:
        logger.debug("Playing %d instructions for origin %s", len(sequence.instructions), sequence.origin)
        self.sequences.append(sequence)

    async def play_sound(self, file: str, volume: float) -> None:
        self.sounds.append((file, volume))

    def clear(self) -> None:
        self.sequences.clear()
        self.sounds.clear()
