import asyncio
import logging
import sys
import io

# Windows UTF-8 兼容性处理
if sys.platform.startswith('win'):
    # type: ignore (针对特定平台的重写)
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8')

from autoanim import CatalogLoader, RollPhase, TemplateData
from autoanim.adapters import GenericAdapter
from autoanim.dispatch import AnimationDispatcher, AnimationRegistry, JSONRenderer, RecordingRenderer, StaticScene

LOCAL_USER = "gm"


async def run_demo() -> None:
    # 1. 加载目录与设置
    loader = CatalogLoader(data_dir="data")
    definitions, categories, settings = loader.load_all()
    registry = AnimationRegistry()
    registry.register_all(definitions)
    registry.set_categories(categories)
    print(f"已加载 {len(registry)} 条动画定义，{len(categories)} 个分类")
    print()

    # 2. 布置场景：巫师在 (0, 0)，两个哥布林
    scene = StaticScene(id="demo")
    wizard = scene.place_token("wizard", 0, 0)
    goblin_a = scene.place_token("goblin-a", 3, 0)
    goblin_b = scene.place_token("goblin-b", 1, 1)

    renderer = RecordingRenderer()
    dispatcher = AnimationDispatcher(registry, scene, renderer)
    adapter = GenericAdapter()

    def payload(item, targets, **extra):
        return {"user": LOCAL_USER, "token": wizard, "item": {"name": item}, "targets": targets,
                "rollType": RollPhase.ATTACK.value, **extra}

    # 3. 远程攻击 + 近战攻击
    for item, targets in (("Fire Bolt", [goblin_a]), ("Longsword", [goblin_b]), ("Dagger", [goblin_a])):
        status = await dispatcher.handle_event(adapter, payload(item, targets), settings, LOCAL_USER)
        print(f"{item:<12} -> {status.value if status else 'not applicable'}")

    # 4. 模板法术：先调度，随后模板才出现在场景中
    task = asyncio.ensure_future(
        dispatcher.handle_event(adapter, payload("Fireball", [], rollType="pass"), settings, LOCAL_USER)
    )
    await asyncio.sleep(0)
    dispatcher.template_created(TemplateData(shape="circle", x=450, y=250, distance=20))
    status = await task
    print(f"{'Fireball':<12} -> {status.value if status else 'not applicable'}")

    # 5. 输出
    print()
    json_renderer = JSONRenderer()
    for sequence in renderer.sequences:
        print(json_renderer.render_json(sequence, indent=2))


def main() -> int:
    """主函数"""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    print("=" * 80)
    print("Automated Animations 调度演示")
    print("=" * 80)
    print()

    try:
        asyncio.run(run_demo())
    except FileNotFoundError as e:
        print(f"❌ 错误: {e}")
        print("请确保 data/ 目录下存在 animations.yaml, item_categories.json")
        return 1

    return 0


if __name__ == "__main__":
    exit_code: int = main()
    sys.exit(exit_code)
