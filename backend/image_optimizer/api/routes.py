"""API routes for presets, optimization runs and LQIP lookups."""
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request

from image_optimizer.batch import validate_post_id
from image_optimizer.processing.errors import ConfigError
from image_optimizer.processing.lqip import lqip_paths, read_data_uri
from image_optimizer.processing.presets import validate_base_name
from image_optimizer.processing.service import ImagePipeline

logger = logging.getLogger("optimizer.api")
router = APIRouter(prefix="/api", tags=["optimizer"])


def get_pipeline(request: Request) -> ImagePipeline:
    return request.app.state.pipeline


def _post_id_or_400(post_id: str) -> str:
    try:
        return validate_post_id(post_id)
    except ValueError as e:
        raise HTTPException(400, str(e))


def _base_name_or_400(base_name: str) -> str:
    try:
        return validate_base_name(base_name)
    except ConfigError as e:
        raise HTTPException(400, str(e))


def _local_source_or_400(pipeline: ImagePipeline, source: str) -> Path:
    """Local sources must live under the raw images directory."""
    raw_dir = pipeline.settings.raw_dir.resolve()
    path = Path(source)
    if not path.is_absolute():
        path = raw_dir / path
    path = path.resolve()
    if not path.is_relative_to(raw_dir):
        raise HTTPException(400, "Local sources must be inside the raw images directory")
    return path


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/presets")
def list_presets(pipeline: ImagePipeline = Depends(get_pipeline)):
    essential = set(pipeline.registry.list_essential_presets())
    transform = set(pipeline.registry.transform_names())
    return [
        {
            "name": p.name,
            "width": p.width,
            "height": p.height,
            "format": p.format.value,
            "quality": p.quality,
            "fit": p.fit.value,
            "essential": p.name in essential,
            "transform": p.name in transform,
        }
        for p in pipeline.registry
    ]


@router.post("/optimize")
async def optimize(
    source: str = Body(...),
    post_id: str = Body(...),
    base_name: Optional[str] = Body(None),
    presets: Optional[list[str]] = Body(None),
    force: bool = Body(False),
    lqip: bool = Body(True),
    pipeline: ImagePipeline = Depends(get_pipeline),
):
    """Run the pipeline for one source into public/images/<post_id>. Omit presets for the essential family."""
    post_id = _post_id_or_400(post_id)
    source = (source or "").strip()
    if base_name is not None:
        base_name = _base_name_or_400(base_name)
    if not source:
        raise HTTPException(400, "source is required")
    if not source.startswith(("http://", "https://")):
        source = str(_local_source_or_400(pipeline, source))
    try:
        report = await pipeline.process(
            source,
            presets=presets,
            output_dir=pipeline.settings.public_dir / post_id,
            base_name=base_name,
            force=force,
            lqip=lqip,
        )
    except ConfigError as e:
        raise HTTPException(400, str(e))
    return report.to_dict()


@router.get("/lqip/{post_id}/{base_name}")
def get_lqip(post_id: str, base_name: str, pipeline: ImagePipeline = Depends(get_pipeline)):
    post_id = _post_id_or_400(post_id)
    base_name = _base_name_or_400(base_name)
    _, base64_path = lqip_paths(pipeline.settings.public_dir / post_id, base_name)
    if not base64_path.is_file():
        raise HTTPException(404, "LQIP not found")
    return {"post_id": post_id, "base_name": base_name, "data_uri": read_data_uri(base64_path)}
