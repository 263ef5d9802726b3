import structlog
import uvicorn

from powcaptcha.config import settings
from powcaptcha.main import app

logger = structlog.get_logger()


def main() -> None:
    logger.info("server_started", host=settings.host, port=settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
