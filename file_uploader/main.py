import logging

from fastapi import FastAPI

from file_uploader.api.uploads import router as uploads_router
from file_uploader.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(title="File Uploader")

app.include_router(uploads_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}
