import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ValidationError

from autoanim.config import DispatchSettings
from autoanim.loader import CatalogLoader
from autoanim.models import ActionRecord, Point, RollPhase, TemplateData, TokenRef
from autoanim.dispatch import (
    AnimationDispatcher, AnimationRegistry, GridSpec, JSONRenderer, RecordingRenderer, StaticScene,
)

app = FastAPI(title="Automated Animations Dispatch API")

DATA_DIR = os.environ.get("AUTOANIM_DATA_DIR", "data")


class TokenSnapshot(BaseModel):
    id: str
    name: str = ""
    col: float
    row: float
    width: float = 1.0
    height: float = 1.0


class TemplateSnapshot(BaseModel):
    shape: str
    x: float
    y: float
    distance: float
    direction: float = 0.0
    id: str = ""


class DispatchRequest(BaseModel):
    item_name: str
    source: TokenSnapshot
    targets: List[TokenSnapshot] = []
    # None 表示全部命中
    hit_targets: Optional[List[str]] = None
    roll_phase: RollPhase = RollPhase.PASS
    user_id: str = ""
    is_critical: bool = False
    is_fumble: bool = False
    force_miss: bool = False
    reach: int = 0
    template: Optional[TemplateSnapshot] = None
    destination: Optional[Point] = None
    grid: GridSpec = GridSpec()
    settings: Dict[str, Any] = {}


@lru_cache(maxsize=1)
def get_registry() -> AnimationRegistry:
    registry = AnimationRegistry()
    registry.load_from_config(os.path.join(DATA_DIR, "animations.yaml"),
                              os.path.join(DATA_DIR, "item_categories.json"))
    return registry


@app.get("/health")
def health():
    return {"status": "ok", "definitions": len(get_registry())}


@app.post("/dispatch")
async def dispatch(req: DispatchRequest):
    try:
        # 单次请求内无法等待模板创建
        settings = DispatchSettings.model_validate({**req.settings, "template_timeout": 0})
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    scene = StaticScene(id="api", grid_spec=req.grid)
    source = scene.place_token(req.source.id, req.source.col, req.source.row, req.source.width, req.source.height)
    targets = []
    for snapshot in req.targets:
        scene.place_token(snapshot.id, snapshot.col, snapshot.row, snapshot.width, snapshot.height)
        targets.append(TokenRef(id=snapshot.id, name=snapshot.name or snapshot.id))
    if req.hit_targets is None:
        hits = list(targets)
    else:
        hits = [t for t in targets if t.id in req.hit_targets]

    template = None
    if req.template is not None:
        template = TemplateData(**req.template.model_dump())

    record = ActionRecord(
        system_id="api",
        source_token=TokenRef(id=source.id, name=req.source.name or source.id),
        item_name=req.item_name,
        all_targets=targets,
        hit_targets=hits,
        user_id=req.user_id,
        roll_phase=req.roll_phase,
        template_data=template,
        is_critical=req.is_critical,
        is_fumble=req.is_fumble,
        force_miss=req.force_miss,
        reach=req.reach,
        destination=req.destination,
    )

    renderer = RecordingRenderer()
    dispatcher = AnimationDispatcher(get_registry(), scene, renderer)
    status = await dispatcher.dispatch(record, settings)

    json_renderer = JSONRenderer()
    return {
        "status": status.value,
        "origin": record.origin_id,
        "sequences": [json_renderer.render(s) for s in renderer.sequences],
        "sounds": [{"file": f, "volume": v} for f, v in renderer.sounds],
    }


if __name__ == "__main__":
    import uvicorn  # type: ignore
    uvicorn.run(app, host="0.0.0.0", port=8000)
