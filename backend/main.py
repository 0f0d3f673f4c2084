from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from db.database import engine, Base
from services.symptom_catalog_service import ensure_default_symptoms
from api.symptoms import router as symptoms_router
from api.users import router as users_router
from api.symptom_logs import router as symptom_logs_router
from api.analytics import router as analytics_router

settings.validate_runtime_configuration()

# Create all tables
Base.metadata.create_all(bind=engine)
ensure_default_symptoms()

app = FastAPI(title=settings.APP_NAME, version="1.0.0")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if not settings.SECURITY_HEADERS_ENABLED:
        return response
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response

# Routers
app.include_router(symptoms_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(symptom_logs_router, prefix="/api")
app.include_router(analytics_router, prefix="/api")


@app.get("/api/health")
def health_check():
    return {"status": "ok", "app": settings.APP_NAME}
