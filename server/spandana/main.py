import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from spandana.config import settings
from spandana.database import init_db
from spandana.services.exam_session import ExamSessionError
from spandana.services.registration import RegistrationError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup"""
    init_db()
    logger.info("🚀 %s is starting...", settings.app_name)
    logger.info("📚 Database: %s", settings.database_url)
    if not settings.openai_api_key:
        logger.warning("⚠️ OPENAI_API_KEY is not configured; the admin assistant is disabled")


@app.exception_handler(ExamSessionError)
async def exam_session_error_handler(request: Request, exc: ExamSessionError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RegistrationError)
async def registration_error_handler(request: Request, exc: RegistrationError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.api_version,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


# Import and include routers
from spandana.routes import (  # noqa: E402
    admin,
    admin_exams,
    admin_questions,
    exams,
    participant,
    question_sets,
    register,
)

app.include_router(register.router, prefix="/api", tags=["Registration"])
app.include_router(participant.router, prefix="/api", tags=["Participant"])
app.include_router(exams.router, prefix="/api/exams", tags=["Exams"])
app.include_router(admin_exams.router, prefix="/api/admin/exams", tags=["Admin Exams"])
app.include_router(admin_questions.router, prefix="/api/admin/questions", tags=["Question Bank"])
app.include_router(question_sets.router, prefix="/api/admin/question-sets", tags=["Question Sets"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
