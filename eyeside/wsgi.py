import atexit
import logging
import os
import signal
import sys

from .app import create_app

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = create_app()
store = app.extensions["eyeside.store"]

atexit.register(store.close)


def handle_shutdown(signum, frame):
    app.logger.info("Received signal %s, shutting down", signum)
    store.close()
    sys.exit(0)


if __name__ == "__main__":
    signal.signal(signal.SIGTERM, handle_shutdown)
    port = int(os.environ.get("PORT", 5000))
    app.logger.info("[RUNNING] server on port: %s", port)
    app.run(host="0.0.0.0", port=port)
