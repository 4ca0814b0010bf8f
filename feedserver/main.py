import logging

from fastapi import FastAPI

from feedserver.api.publish import router as publish_router
from feedserver.core.dependencies import initialize_feed

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Simple NuGet Feed",
    version="0.1.0",
    description="Minimal FastAPI-based NuGet feed server with a JSON-on-disk metadata store.",
)


@app.on_event("startup")
async def startup_event() -> None:
    """
    Load feed options, prepare the metadata store and build the search index.
    """
    data_dir = await initialize_feed()
    logger.info(f"Feed data directory: {data_dir}")


@app.get("/health")
async def health() -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok"}


app.include_router(publish_router, tags=["publish"])


if __name__ == "__main__":
    """
    Allow running `python feedserver/main.py` to start the Uvicorn development server.
    """
    import uvicorn

    uvicorn.run(
        "feedserver.main:app",
        host="0.0.0.0",
        port=5000,
        reload=True,
    )
