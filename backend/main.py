import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import auth
from core.config import ALLOWED_CORS_ORIGINS, APP_ENV
from core.errors import IdentityError
from db.session import dispose_db, init_db

# LOG_LEVEL=DEBUG shows per-request identity decisions; WARNING for quiet production logs
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


tags_metadata = [
    {
        "name": "auth",
        "description": (
            "Passwordless email, OAuth, wallet and guest login converging on one "
            "cookie-based session."
        ),
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting identity service (%s)", APP_ENV)
    await init_db()
    yield
    await dispose_db()


app = FastAPI(
    title="Identity API",
    description="Identity and session authentication service",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

# Session cookies only cross origins when credentials are allowed, which
# browsers reject together with a wildcard origin.
cors_credentials = bool(ALLOWED_CORS_ORIGINS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_CORS_ORIGINS or ["*"],
    allow_credentials=cors_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api")


@app.get("/health")
async def health_check():
    return {"status": "healthy", "message": "Identity API is running"}


@app.exception_handler(IdentityError)
async def identity_error_handler(request: Request, exc: IdentityError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.reason)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.reason})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler_422(request: Request, exc: RequestValidationError):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors())},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
