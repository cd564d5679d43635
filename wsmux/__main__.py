import logging

import uvicorn

from wsmux.app import create_app
from wsmux.config import Settings

log_fmt = r"[%(asctime)s.%(msecs)03d %(levelname)s] %(message)s"
datefmt = "%H:%M:%S"


def main() -> None:
    settings = Settings.from_config()
    logging.basicConfig(
        format=log_fmt, datefmt=datefmt, level=settings.log_level.upper()
    )
    app = create_app(settings=settings)
    uvicorn.run(
        app, host=settings.host, port=settings.port, log_level=settings.log_level
    )


if __name__ == "__main__":
    main()
