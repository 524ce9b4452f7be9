import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from garagehub.config import get_settings
from garagehub.database import engine, Base
from garagehub.exceptions import DomainException
from garagehub import models  # Registers models with SQLAlchemy

# Import Routers
from garagehub.routers import auth, booking, garage, payment, review, service, user

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize DB
Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.APP_NAME)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return await http_exception_handler(request, exc.to_http_exception())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder({"detail": {
            "message": "Invalid request",
            "code": "ValidationError",
            "details": {"errors": [{k: v for k, v in e.items() if k != "ctx"} for e in exc.errors()]},
        }}),
    )

# =================================================================
# REGISTER API ROUTERS
# =================================================================
app.include_router(auth.router)
app.include_router(user.router)

# --- MARKETPLACE ---
app.include_router(garage.router)
app.include_router(service.router)
app.include_router(booking.router)
app.include_router(review.router)
app.include_router(payment.router)


@app.get("/health", include_in_schema=False)
def health():
    return {"status": "ok", "app": settings.APP_NAME}
