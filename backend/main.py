import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.auth import fastapi_users, auth_backend
from core.config import settings
from core.logging_config import setup_logging
from core.rate_limit import enforce_rate_limit
from db.database import create_db_and_tables
from routers.analytics import router as analytics_router
from routers.blockchain import router as blockchain_router
from routers.breweries import router as breweries_router
from routers.deliveries import router as deliveries_router
from routers.kegs import router as kegs_router
from routers.pos import router as pos_router
from routers.reports import router as reports_router
from routers.restaurants import router as restaurants_router
from routers.roles import router as roles_router
from schemas.users import UserRead, UserCreate, UserUpdate

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, settings.log_file)
    await create_db_and_tables()
    logger.info(f"Keg Tracker API started (POS: {settings.pos_system}, live blockchain: {settings.use_live_blockchain})")
    yield


app = FastAPI(
    title="Keg Tracker API",
    description="API for tracking kegs from brewery to tap and detecting pour variance",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid input", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Internal server error"})


rate_limited = [Depends(enforce_rate_limit)]

# Authentication routes (fastapi-users)
app.include_router(fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"], dependencies=rate_limited)
app.include_router(fastapi_users.get_register_router(UserRead, UserCreate), prefix="/auth", tags=["auth"], dependencies=rate_limited)
app.include_router(fastapi_users.get_reset_password_router(), prefix="/auth", tags=["auth"], dependencies=rate_limited)
app.include_router(fastapi_users.get_users_router(UserRead, UserUpdate), prefix="/users", tags=["users"], dependencies=rate_limited)

# Supply chain directory
app.include_router(roles_router, prefix="/roles", tags=["roles"], dependencies=rate_limited)
app.include_router(breweries_router, prefix="/breweries", tags=["breweries"], dependencies=rate_limited)
app.include_router(restaurants_router, prefix="/restaurants", tags=["restaurants"], dependencies=rate_limited)

# Keg lifecycle
app.include_router(kegs_router, prefix="/kegs", tags=["kegs"], dependencies=rate_limited)
app.include_router(deliveries_router, prefix="/deliveries", tags=["deliveries"], dependencies=rate_limited)
app.include_router(pos_router, prefix="/pos", tags=["pos"], dependencies=rate_limited)
app.include_router(blockchain_router, prefix="/blockchain", tags=["blockchain"], dependencies=rate_limited)

# Variance
app.include_router(analytics_router, prefix="/analytics", tags=["analytics"], dependencies=rate_limited)
app.include_router(reports_router, prefix="/reports", tags=["reports"], dependencies=rate_limited)

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
