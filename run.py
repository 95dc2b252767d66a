import uvicorn

from recorder.core.config import settings

if __name__ == "__main__":
    # One worker only: the job queue lives in process memory
    uvicorn.run(
        "recorder.main:app",
        host=settings.host,
        port=settings.port,
        workers=1,
        reload=settings.environment == "development",
        log_level="info" if settings.environment == "development" else "warning",
    )
