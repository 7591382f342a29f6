"""ASGI entrypoint wiring the Parley HTTP, websocket and media surfaces."""

import logging.config

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.metrics import router as metrics_router
from app.api.routes import router as api_router
from app.api.ws import router as ws_router
from app.config import get_settings
from app.core.error_handlers import register_error_handlers
from parley.realtime import get_room_registry, shutdown_realtime, startup_realtime


LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        }
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }
    },
    "root": {
        "handlers": ["default"],
        "level": "INFO",
    },
    "loggers": {
        "parley.realtime": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "app.api.ws": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "app.services": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
    },
}


logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


@app.get("/health", tags=["system"])
def health_check() -> dict[str, object]:
    """Liveness check with the number of users currently online on this node."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "onlineUsers": len(get_room_registry().online_users()),
    }


@app.on_event("startup")
async def _startup() -> None:
    settings.media_root.mkdir(parents=True, exist_ok=True)
    await startup_realtime()
    logger.info("Media served from %s at %s", settings.media_root, settings.media_base_url)


@app.on_event("shutdown")
async def _shutdown() -> None:
    await shutdown_realtime()


app.include_router(api_router, prefix="/api")
app.include_router(ws_router)
app.include_router(metrics_router)
app.mount(
    settings.media_base_url,
    StaticFiles(directory=settings.media_root, check_dir=False),
    name="media",
)
