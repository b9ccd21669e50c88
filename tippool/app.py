import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tippool.routes import tips, upload


def create_app() -> FastAPI:
    app = FastAPI(title="Tip Pool Distribution API", version="0.1.0")

    log_level = os.getenv("TIP_POOL_LOG_LEVEL")
    if log_level:
        logging.getLogger("tippool").setLevel(log_level.upper())

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(upload.router, prefix="/api")
    app.include_router(tips.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Tip Pool Distribution API",
                "docs": "/docs",
            }
        )

    return app


app = create_app()
