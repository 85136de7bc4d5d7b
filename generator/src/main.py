"""
AppForge generator - Main entry point.
"""

import logging
import sys

from generator.src.config import get_settings
from generator.src.worker import run_worker

def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

logger = logging.getLogger(__name__)

def main():
    """Main entry point."""
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("Starting AppForge generator")
    logger.info(f"Redis URL: {settings.redis_url}")
    logger.info(f"Model: {settings.model_name}")
    logger.info(f"Output directory: {settings.output_dir}")

    if not settings.anthropic_api_key:
        logger.error("ANTHROPIC_API_KEY is not set")
        sys.exit(1)

    logger.info("Starting worker...")
    run_worker()

if __name__ == "__main__":
    main()
