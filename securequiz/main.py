"""
SecureQuiz Proctor Service - FastAPI Application
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import time

from .config import settings
from .proctor.api import _sessions, router as proctor_router
from .utils.logging import Colors, log_error, log_startup, setup_logger


# Route the package loggers through the colored formatter
setup_logger("securequiz")

app = FastAPI(
    title=settings.APP_NAME,
    description="Secure exam proctoring: security gate, signal corroboration and penalty escalation",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)


# ============================================================================
# Request Logging Middleware
# ============================================================================

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests with timing."""
    start = time.time()
    method = request.method
    path = request.url.path
    # Client shells report events at a high rate
    quiet = path in ["/health", "/favicon.ico", "/api/proctor/event"]

    if not quiet:
        print(f"{Colors.CYAN}→{Colors.RESET} {method} {path}")

    try:
        response = await call_next(request)
        duration_ms = int((time.time() - start) * 1000)

        if not quiet:
            status_color = Colors.GREEN if response.status_code < 400 else Colors.RED
            print(f"{Colors.CYAN}←{Colors.RESET} {status_color}{response.status_code}{Colors.RESET} in {duration_ms}ms")

        return response
    except Exception as e:
        log_error("RequestError", str(e))
        raise


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using wildcard origin
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(proctor_router)


@app.on_event("startup")
async def startup_event():
    """Log service startup and configuration."""
    log_startup(settings.APP_NAME, settings.PORT, settings)


@app.on_event("shutdown")
async def shutdown_event():
    """Stop monitoring sessions that were never submitted."""
    for session in list(_sessions.values()):
        if not session.attempt.is_submitted:
            session.stop()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": "1.0.0"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("securequiz.main:app", host="0.0.0.0", port=settings.PORT, reload=settings.DEBUG)
