import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from plantcare.api.routes import router as api_router
from plantcare.core.config import Settings, get_settings
from plantcare.services.detection import DetectionService


def create_app(
    settings: Optional[Settings] = None,
    detection_service: Optional[DetectionService] = None,
) -> FastAPI:
    """Application factory.

    Tests pass their own settings and a detection service built around stub
    models; production relies on the environment and the checkpoints listed in
    ``PLANTCARE_MODEL_PATHS``.
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    application = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        description=(
            "Plant disease detection backend: ensemble leaf-image classification "
            "with reliability scoring and treatment guidance."
        ),
    )

    # For a real deployment you should replace "*" with the concrete frontend URL(s).
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.state.settings = settings
    # Models load lazily on the first detection request.
    application.state.detection_service = detection_service or DetectionService.from_settings(settings)
    application.include_router(api_router, prefix=settings.api_prefix)

    @application.get("/", tags=["health"])
    async def health_check(request: Request) -> dict:
        """Simple health-check endpoint used by the frontend and tests."""
        pool = request.app.state.detection_service.pool
        return {
            "status": "ok",
            "models_ready": pool.ready,
            "models_failed": pool.failed,
        }

    return application


app = create_app()
