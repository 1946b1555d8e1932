import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from safemove.admin_router import router as admin_router
from safemove.config import get_settings
from safemove.db import engine, Base
from safemove.emergency_router import router as emergency_router
from safemove.errors import LifecycleError
from safemove.student_router import router as student_router

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("safemove")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables (if they don't exist)
    Base.metadata.create_all(bind=engine)
    logger.info("SafeMove API ready")
    yield


# Create the FastAPI app
app = FastAPI(title="SafeMove Hostel Trip API", lifespan=lifespan)

# The student and admin pages are served from a separate frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include Routers
app.include_router(admin_router)
app.include_router(student_router)
app.include_router(emergency_router)


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.get("/")
async def health():
    return {"status": "ok"}
