import uvicorn

import config
from logs import configure_logging


CONFIG = config.Config()


def main() -> None:
    configure_logging(CONFIG.log_level)
    uvicorn.run(
        "app.app:app",
        host="0.0.0.0",
        port=CONFIG.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
