"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from image_optimizer.api.routes import router
from image_optimizer.config import CORS_ORIGINS, PipelineSettings, get_settings, logger as config_logger
from image_optimizer.processing.service import ImagePipeline

logging.getLogger("uvicorn").setLevel(logging.INFO)


def create_app(settings: Optional[PipelineSettings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.pipeline = ImagePipeline(settings)
        config_logger.info("Image optimizer API started (public dir %s)", settings.public_dir)
        yield
        await app.state.pipeline.close()
        config_logger.info("Image optimizer API shutting down")

    app = FastAPI(
        title="Blog Image Optimizer API",
        description="Generate preset image variants and LQIP placeholders for blog posts.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS if CORS_ORIGINS else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    from image_optimizer.config import HOST, PORT
    uvicorn.run("image_optimizer.main:app", host=HOST, port=PORT, reload=True)
