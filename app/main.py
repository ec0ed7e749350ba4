import logging
import time
from fastapi import FastAPI, Request
from dotenv import load_dotenv

# Load environment variables from .env file before anything else
load_dotenv()

from app.core.config import settings
from app.core.logging import setup_logging, request_id_ctx
from app.core.errors import register_exception_handlers
from app.core.db import init_models
from app.api.router import api_router
from app.modules.knowledge.indexes import ensure_vector_indexes

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)
register_exception_handlers(app)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000
    logger.info(
        f"Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {process_time:.2f}ms"
    )
    return response

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id", "-")
    token = request_id_ctx.set(rid)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(token)
    response.headers["x-request-id"] = rid
    return response

@app.on_event("startup")
async def on_startup():
    await init_models()
    await ensure_vector_indexes()

app.include_router(api_router, prefix=settings.API_PREFIX)
