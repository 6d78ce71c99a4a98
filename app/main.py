import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_settings
from app.database import engine, SessionLocal
from app.logging_config import configure_logging
from app.services.payment import build_payment_service
from app import models

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_json)
    # Create tables
    models.Base.metadata.create_all(bind=engine)
    lifecycle = app.state.payment_service.lifecycle
    await lifecycle.start()
    try:
        yield
    finally:
        await lifecycle.stop()


app = FastAPI(
    title="QRIS Dynamic Payment Gateway",
    description="Issues short-lived dynamic QRIS payment requests with collision-free amounts",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.payment_service = build_payment_service(settings, SessionLocal)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "Request handled",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
        },
    )
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"status": False, "message": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        errors.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    return JSONResponse(status_code=400, content={"status": False, "message": "; ".join(errors)})


@app.get("/health")
def health_check():
    return {"status": "ok", "service": "qris-gateway"}


from app.routers import qris, admin  # noqa: E402
app.include_router(qris.router, prefix="/api/qris", tags=["qris"])
app.include_router(admin.router, prefix="/api/qris/debug", tags=["admin"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port)
