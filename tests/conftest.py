"""
pytest 共享配置和 Fixtures
这个文件会被 pytest 自动加载，所有测试都可以使用这里定义的 fixtures
"""

import sys
import random
from pathlib import Path
import pytest  # pytest fixture 装饰器需要

# 确保 autoanim 模块能被导入
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# ============================================================================
# 导入项目模块
# ============================================================================
from autoanim.config import DispatchSettings
from autoanim.models import AnimationDefinition, CategorySet, ActionRecord, TokenRef, RollPhase
from autoanim.dispatch import AnimationDispatcher, AnimationRegistry, RecordingRenderer, StaticScene

DATA_DIR = project_root / "data"


# ============================================================================
# 基础 Fixtures（目录数据）
# ============================================================================

def layer(file, **options):
    """构造特效层字典的辅助函数"""
    return {"file": file, "options": options}


@pytest.fixture
def fire_bolt_definition():
    """远程定义：来源 + 投射物 + 命中"""
    return AnimationDefinition.model_validate({
        "name": "Ranged Spell",
        "menu": "range",
        "source": layer("cast.fire"),
        "secondary": layer("fire_bolt", stretch=True, isWait=True),
        "target": layer("explosion.orange"),
    })


@pytest.fixture
def dagger_definition():
    """近战定义：带投掷变体"""
    return AnimationDefinition.model_validate({
        "name": "Dagger",
        "menu": "melee",
        "target": layer("dagger.slash"),
        "rangeSwitch": layer("dagger.throw", stretch=True),
    })


@pytest.fixture
def registry(fire_bolt_definition, dagger_definition):
    """小型注册表：一个远程分类 + 一个近战分类 + 关键字定义"""
    reg = AnimationRegistry()
    reg.register_all([
        fire_bolt_definition,
        dagger_definition,
        AnimationDefinition.model_validate({
            "name": "Sword", "menu": "melee", "target": layer("slash.01"),
        }),
        AnimationDefinition.model_validate({
            "name": "Bardic Inspiration", "matchMode": "contains", "menu": "ontoken",
            "target": layer("bardic_inspiration", isRadius=True, size=1.5),
        }),
        AnimationDefinition.model_validate({
            "name": "Burning Hands", "menu": "templatefx", "target": layer("burning_hands"),
        }),
    ])
    reg.set_categories([
        CategorySet(name="melee", menu="melee", definition="sword", items=["Longsword", "Scimitar"]),
        CategorySet(name="ranged", menu="range", definition="ranged spell", items=["Fire Bolt", "Longbow"]),
    ])
    return reg


@pytest.fixture
def catalog_registry():
    """从 data/ 目录加载的完整注册表"""
    reg = AnimationRegistry()
    reg.load_from_config(str(DATA_DIR / "animations.yaml"), str(DATA_DIR / "item_categories.json"))
    return reg


# ============================================================================
# 场景 Fixtures
# ============================================================================

@pytest.fixture
def scene():
    """100px / 5ft 的网格场景：来源在原点，目标在 3 格外"""
    s = StaticScene(id="scene-1")
    s.place_token("wizard", 0, 0)
    s.place_token("goblin", 3, 0)
    s.place_token("orc", 0, 2)
    return s


@pytest.fixture
def wizard():
    return TokenRef(id="wizard", name="Wizard")


@pytest.fixture
def goblin():
    return TokenRef(id="goblin", name="Goblin")


@pytest.fixture
def orc():
    return TokenRef(id="orc", name="Orc")


@pytest.fixture
def settings():
    """默认设置：命中与未命中都播放"""
    return DispatchSettings(play_on_miss=True)


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def dispatcher(registry, scene, renderer):
    return AnimationDispatcher(registry, scene, renderer, rng=random.Random(7))


@pytest.fixture
def make_record(wizard):
    """ActionRecord 工厂"""
    def _make(item_name, targets=(), hits=None, **kwargs):
        targets = list(targets)
        return ActionRecord(
            system_id="test",
            source_token=kwargs.pop("source", wizard),
            item_name=item_name,
            all_targets=targets,
            hit_targets=list(targets) if hits is None else list(hits),
            user_id=kwargs.pop("user_id", "gm"),
            roll_phase=kwargs.pop("roll_phase", RollPhase.ATTACK),
            **kwargs,
        )
    return _make
