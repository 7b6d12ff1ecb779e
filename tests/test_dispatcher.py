"""
测试调度入口 (dispatcher.py) - 端到端场景
"""

import asyncio
import logging

import pytest

from autoanim.config import DispatchSettings
from autoanim.models import AnimationDefinition, ItemAnimationFlags, SoundSpec, TemplateData
from autoanim.adapters import GenericAdapter
from autoanim.dispatch import (
    AnimationDispatcher, DispatchStatus, GuardState, Phase, PlacementKind, RecordingRenderer,
)
from autoanim.dispatch.host import EffectBounds, RenderedEffect


class ExplodingRenderer(RecordingRenderer):
    async def play(self, sequence):
        raise RuntimeError("renderer offline")


class TestScenarios:

    @pytest.mark.asyncio
    async def test_fire_bolt(self, dispatcher, renderer, settings, make_record, goblin):
        status = await dispatcher.dispatch(make_record("Fire Bolt", targets=[goblin]), settings)

        assert status == DispatchStatus.SUCCESS
        (sequence,) = renderer.sequences
        assert [i.phase for i in sequence.instructions] == [Phase.SOURCE, Phase.SECONDARY, Phase.TARGET]
        assert sequence.module_name == "Automated Animations"
        assert sequence.soft_fail

    @pytest.mark.asyncio
    async def test_unknown_item(self, dispatcher, renderer, settings, make_record, goblin):
        status = await dispatcher.dispatch(make_record("Wish", targets=[goblin]), settings)

        assert status == DispatchStatus.NO_MATCH
        assert renderer.calls == 0

    @pytest.mark.asyncio
    async def test_kill_flag_makes_no_render_call(self, dispatcher, renderer, settings, make_record, goblin):
        flags = ItemAnimationFlags(kill=True, sound=SoundSpec(file="swing.ogg"))
        record = make_record("Fire Bolt", targets=[goblin], is_active_effect_trigger=True, item_flags=flags)

        status = await dispatcher.dispatch(record, settings)

        assert status == DispatchStatus.SUPPRESSED
        assert renderer.calls == 0
        assert dispatcher.guard.state(record.origin_id, "scene-1") == GuardState.ARMED

    @pytest.mark.asyncio
    async def test_item_sound_plays_without_match(self, dispatcher, renderer, settings, make_record):
        flags = ItemAnimationFlags(sound=SoundSpec(file="chime.ogg", volume=0.4))
        status = await dispatcher.dispatch(make_record("Wish", item_flags=flags), settings)

        assert status == DispatchStatus.NO_MATCH
        assert renderer.sounds == [("chime.ogg", 0.4)]

    @pytest.mark.asyncio
    async def test_hits_only_when_not_playing_on_miss(self, dispatcher, renderer, make_record, goblin, orc):
        record = make_record("Fire Bolt", targets=[goblin, orc], hits=[orc])
        await dispatcher.dispatch(record, DispatchSettings(play_on_miss=False))

        targeted = {i.target_id for i in renderer.sequences[0].instructions if i.target_id}
        assert targeted == {"orc"}


class TestTemplateDeferral:
    """模板特效等待模板创建通知"""

    @pytest.mark.asyncio
    async def test_waits_for_template(self, dispatcher, renderer, settings, make_record):
        record = make_record("Burning Hands")
        task = asyncio.create_task(dispatcher.dispatch(record, settings))
        await asyncio.sleep(0)

        assert not task.done()
        assert renderer.calls == 0
        assert dispatcher.scheduler.pending == [record.origin_id]

        assert dispatcher.template_created(TemplateData(shape="circle", x=250, y=250, distance=10))
        assert await task == DispatchStatus.SUCCESS

        (instruction,) = renderer.sequences[0].instructions
        assert instruction.location.kind == PlacementKind.POINT
        assert (instruction.location.x, instruction.location.y) == (250, 250)
        assert dispatcher.scheduler.pending == []

    @pytest.mark.asyncio
    async def test_template_on_record_needs_no_wait(self, dispatcher, renderer, settings, make_record):
        template = TemplateData(shape="circle", x=250, y=250, distance=10)
        status = await dispatcher.dispatch(make_record("Burning Hands", template_data=template), settings)

        assert status == DispatchStatus.SUCCESS
        assert dispatcher.scheduler.pending == []

    @pytest.mark.asyncio
    async def test_template_timeout(self, dispatcher, renderer, make_record):
        settings = DispatchSettings(template_timeout=0.01)
        status = await dispatcher.dispatch(make_record("Burning Hands"), settings)

        assert status == DispatchStatus.SUPPRESSED
        assert renderer.calls == 0

    @pytest.mark.asyncio
    async def test_keyed_notification(self, dispatcher, settings, make_record):
        first = asyncio.create_task(dispatcher.dispatch(make_record("Burning Hands", origin_id="a"), settings))
        second = asyncio.create_task(dispatcher.dispatch(make_record("Burning Hands", origin_id="b"), settings))
        await asyncio.sleep(0)

        dispatcher.template_created(TemplateData(shape="circle", x=0, y=0, distance=5), origin="b")
        assert await second == DispatchStatus.SUCCESS
        assert not first.done()

        dispatcher.retract("a")
        assert await first == DispatchStatus.SUPPRESSED

    @pytest.mark.asyncio
    async def test_same_origin_waiters_both_woken(self, dispatcher, renderer, make_record):
        settings = DispatchSettings(play_on_miss=True, template_timeout=1)
        first = asyncio.create_task(dispatcher.dispatch(make_record("Burning Hands", origin_id="wand"), settings))
        second = asyncio.create_task(dispatcher.dispatch(make_record("Burning Hands", origin_id="wand"), settings))
        await asyncio.sleep(0)
        assert dispatcher.scheduler.pending == ["wand"]

        assert dispatcher.template_created(TemplateData(shape="circle", x=0, y=0, distance=5), origin="wand")
        assert dispatcher.template_created(TemplateData(shape="circle", x=500, y=0, distance=5), origin="wand")

        assert await asyncio.gather(first, second) == [DispatchStatus.SUCCESS] * 2
        assert [s.instructions[0].location.x for s in renderer.sequences] == [0, 500]
        assert dispatcher.scheduler.pending == []


class TestIdempotence:
    """同一 origin 的持久目标层只播放一次；短时特效可以重复播放"""

    @pytest.fixture
    def mark(self, registry):
        registry.register(AnimationDefinition.model_validate({
            "name": "Hunter's Mark", "menu": "ontoken",
            "target": {"file": "mark", "options": {"persistent": True}},
        }))

    @pytest.mark.asyncio
    async def test_replay_skips_persistent_targets(self, dispatcher, renderer, settings, make_record, mark,
                                                   goblin, orc):
        await dispatcher.dispatch(make_record("Hunter's Mark", targets=[goblin], origin_id="item-1"), settings)
        await dispatcher.dispatch(make_record("Hunter's Mark", targets=[goblin, orc], origin_id="item-1"), settings)

        second = renderer.sequences[1]
        assert [i.target_id for i in second.by_phase(Phase.TARGET)] == ["orc"]
        assert dispatcher.guard.state("item-1", "scene-1") == GuardState.PLAYED

    @pytest.mark.asyncio
    async def test_repeat_attack_replays_short_lived_effect(self, dispatcher, renderer, settings, make_record, goblin):
        record = make_record("Fire Bolt", targets=[goblin], origin_id="Item.firebolt")
        assert await dispatcher.dispatch(record, settings) == DispatchStatus.SUCCESS
        assert await dispatcher.dispatch(record, settings) == DispatchStatus.SUCCESS

        for sequence in renderer.sequences:
            assert [i.target_id for i in sequence.by_phase(Phase.TARGET)] == ["goblin"]
        assert dispatcher.guard.state("Item.firebolt", "scene-1") == GuardState.IDLE
        assert len(dispatcher.guard) == 0

    @pytest.mark.asyncio
    async def test_nothing_left_is_suppressed(self, dispatcher, renderer, settings, make_record, mark, goblin):
        record = make_record("Hunter's Mark", targets=[goblin], origin_id="item-2")
        assert await dispatcher.dispatch(record, settings) == DispatchStatus.SUCCESS
        assert await dispatcher.dispatch(record, settings) == DispatchStatus.SUPPRESSED

        dispatcher.effect_removed("item-2")
        assert await dispatcher.dispatch(record, settings) == DispatchStatus.SUCCESS
        assert len(renderer.sequences) == 2

    @pytest.mark.asyncio
    async def test_scene_effect_counts_as_played(self, dispatcher, scene, renderer, settings, make_record, goblin):
        scene.add_effect(RenderedEffect("longsword", "item-3", EffectBounds(350, 50, 100, 100), token_id="goblin"))
        status = await dispatcher.dispatch(make_record("Longsword", targets=[goblin], origin_id="item-3"), settings)
        assert status == DispatchStatus.SUPPRESSED

    @pytest.mark.asyncio
    async def test_scene_unload_resets(self, dispatcher, renderer, settings, make_record, mark, goblin):
        record = make_record("Hunter's Mark", targets=[goblin], origin_id="item-4")
        await dispatcher.dispatch(record, settings)
        dispatcher.scene_unloaded()
        assert await dispatcher.dispatch(record, settings) == DispatchStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_render_failure_releases_targets(self, registry, scene, settings, make_record, goblin):
        dispatcher = AnimationDispatcher(registry, scene, ExplodingRenderer())
        with pytest.raises(RuntimeError):
            await dispatcher.dispatch(make_record("Fire Bolt", targets=[goblin], origin_id="item-5"), settings)
        assert not dispatcher.guard.has_target("item-5", "scene-1", "goblin")


class TestRetraction:

    @pytest.mark.asyncio
    async def test_retract_without_dispatch_in_flight(self, dispatcher, renderer, settings, make_record, goblin):
        record = make_record("Fire Bolt", targets=[goblin])
        dispatcher.retract(record.origin_id)

        assert await dispatcher.dispatch(record, settings) == DispatchStatus.SUCCESS
        assert renderer.calls == 1

    @pytest.mark.asyncio
    async def test_retract_during_template_wait(self, dispatcher, renderer, settings, make_record):
        record = make_record("Burning Hands")
        task = asyncio.create_task(dispatcher.dispatch(record, settings))
        await asyncio.sleep(0)

        dispatcher.retract(record.origin_id)

        assert await task == DispatchStatus.SUPPRESSED
        assert renderer.calls == 0
        assert not dispatcher.template_created(TemplateData(shape="circle", x=0, y=0, distance=5))

        # 撤回只作用于当时进行中的调度
        assert not dispatcher.guard.is_retracted(record.origin_id)
        template = TemplateData(shape="circle", x=0, y=0, distance=5)
        retried = make_record("Burning Hands", origin_id=record.origin_id, template_data=template)
        assert await dispatcher.dispatch(retried, settings) == DispatchStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_retract_during_sound_delay(self, dispatcher, renderer, settings, make_record, goblin):
        flags = ItemAnimationFlags(sound=SoundSpec(file="twang.ogg", delay=20))
        record = make_record("Fire Bolt", targets=[goblin], item_flags=flags)
        task = asyncio.create_task(dispatcher.dispatch(record, settings))
        await asyncio.sleep(0)

        dispatcher.retract(record.origin_id)

        assert await task == DispatchStatus.SUPPRESSED
        assert renderer.sequences == []


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_concurrent_dispatches(self, dispatcher, renderer, settings, make_record, goblin, orc):
        records = [
            make_record("Fire Bolt", targets=[goblin]),
            make_record("Longsword", targets=[orc]),
            make_record("Bardic Inspiration", targets=[goblin]),
        ]
        statuses = await asyncio.gather(*(dispatcher.dispatch(r, settings) for r in records))

        assert statuses == [DispatchStatus.SUCCESS] * 3
        assert {s.origin for s in renderer.sequences} == {r.origin_id for r in records}

    @pytest.mark.asyncio
    async def test_submitted_task_failure_is_isolated(self, registry, scene, settings, make_record, goblin, caplog):
        dispatcher = AnimationDispatcher(registry, scene, ExplodingRenderer())
        with caplog.at_level(logging.ERROR):
            dispatcher.submit(make_record("Fire Bolt", targets=[goblin]), settings)
            ok = dispatcher.submit(make_record("Wish"), settings)
            await dispatcher.scheduler.drain()

        assert ok.result() == DispatchStatus.NO_MATCH
        assert "renderer offline" in caplog.text


class TestDisabled:

    @pytest.mark.asyncio
    async def test_disabled_notifies_once(self, registry, scene, renderer, make_record, goblin):
        messages = []
        dispatcher = AnimationDispatcher(registry, scene, renderer, notifier=messages.append)
        settings = DispatchSettings(enabled=False)

        for _ in range(2):
            assert await dispatcher.dispatch(make_record("Fire Bolt", targets=[goblin]), settings) \
                == DispatchStatus.SUPPRESSED
        assert len(messages) == 1
        assert renderer.calls == 0


class TestHandleEvent:
    """宿主事件入口：规范化 + 路由"""

    def payload(self, **overrides):
        payload = {"user": "gm", "token": "wizard", "item": {"name": "Fire Bolt", "hasAttack": True},
                   "targets": ["goblin"], "rollType": "attack"}
        payload.update(overrides)
        return payload

    @pytest.mark.asyncio
    async def test_attack_event_dispatches(self, dispatcher, renderer, settings):
        status = await dispatcher.handle_event(GenericAdapter(), self.payload(), settings, "gm")
        assert status == DispatchStatus.SUCCESS
        assert len(renderer.sequences) == 1

    @pytest.mark.asyncio
    async def test_other_user_not_applicable(self, dispatcher, renderer, settings):
        assert await dispatcher.handle_event(GenericAdapter(), self.payload(user="p2"), settings, "gm") is None
        assert renderer.calls == 0

    @pytest.mark.asyncio
    async def test_damage_roll_skipped(self, dispatcher, renderer, settings):
        payload = self.payload(rollType="damage")
        assert await dispatcher.handle_event(GenericAdapter(), payload, settings, "gm") is None

    @pytest.mark.asyncio
    async def test_teleport_destination_from_event(self, dispatcher, registry, renderer, settings):
        registry.register(AnimationDefinition.model_validate({
            "name": "Misty Step", "menu": "preset", "presetType": "teleportation",
            "source": {"file": "misty_step.01"}, "target": {"file": "misty_step.02"},
        }))
        payload = self.payload(item={"name": "Misty Step"}, targets=[], rollType="pass",
                               destination={"x": 700, "y": 300})

        status = await dispatcher.handle_event(GenericAdapter(), payload, settings, "gm")

        assert status == DispatchStatus.SUCCESS
        (landing,) = renderer.sequences[0].by_phase(Phase.TARGET)
        assert landing.location.kind == PlacementKind.POINT
        assert (landing.location.x, landing.location.y) == (700, 300)

    @pytest.mark.asyncio
    async def test_malformed_item_not_applicable(self, dispatcher, renderer, settings):
        payload = self.payload(item="Fire Bolt")
        assert await dispatcher.handle_event(GenericAdapter(), payload, settings, "gm") is None
        assert renderer.calls == 0
