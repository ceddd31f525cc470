"""
CareSchedule Runner

Entry point for running the scheduling API.
"""
import uvicorn
import logging

from .config import Config

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("careschedule")


def run():
    """Run the CareSchedule API"""
    logger.info(f"Starting CareSchedule on {Config.API_HOST}:{Config.API_PORT}")

    uvicorn.run(
        "src.careschedule.app:app",
        host=Config.API_HOST,
        port=Config.API_PORT,
        reload=Config.DEBUG
    )


if __name__ == "__main__":
    run()
