from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware

from vidshare.api.routes import health, videos, watch
from vidshare.core.config import get_settings
from vidshare.core.logging import setup_logging
from vidshare.db.session import init_db
from vidshare.services.errors import AppException, to_http_exception

settings = get_settings()

setup_logging(settings)

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    return await http_exception_handler(request, to_http_exception(exc))


app.include_router(health.router, prefix="/api")
app.include_router(videos.router, prefix="/api")
app.include_router(watch.router, prefix="/api")

init_db()
