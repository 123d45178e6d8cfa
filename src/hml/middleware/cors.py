"""CORS middleware configuration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hml.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the editor frontend origins; the public bio page is served by the frontend too."""
    origins = list(settings.cors_origins)
    if settings.frontend_base_url not in origins:
        origins.append(settings.frontend_base_url)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit"],
    )
