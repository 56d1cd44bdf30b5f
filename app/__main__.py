import logging

import uvicorn

from app.config import settings


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run("app.main:app", host=settings.host, port=settings.port, lifespan="on")


if __name__ == "__main__":
    main()
