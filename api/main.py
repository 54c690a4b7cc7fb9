# api/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from core import config
from .deps import init_services, shutdown_services
from .routes import detect_routes, render_routes, artifact_routes, health_routes

logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_services(app)
    yield
    await shutdown_services()


app = FastAPI(title="LayerFlow API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_routes.router, prefix="/api")
app.include_router(detect_routes.router, prefix="/api")
app.include_router(render_routes.router, prefix="/api")
app.include_router(artifact_routes.router, prefix="/api")
