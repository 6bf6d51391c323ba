import logging
import os
from typing import Optional

from flask import Flask, jsonify
from werkzeug.serving import make_server

logger = logging.getLogger("web")

PORT = int(os.getenv("PORT", "8080"))
GREETING = "Hello World!"

app = Flask(__name__)


@app.route("/")
def index():
    # фиксированный ответ: именно его проверяет smoke-тест в пайплайне
    return GREETING, 200, {"Content-Type": "text/plain; charset=utf-8"}


@app.route("/health")
def health():
    return jsonify({"status": "ok"}), 200


@app.route("/ready")
def ready():
    # зависимостей у сервиса нет, поэтому ready == health
    return jsonify({"status": "ok"}), 200


def main(port: Optional[int] = None) -> None:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # сначала bind, потом лог: если порт занят, "running" в логе не появится
    server = make_server("0.0.0.0", PORT if port is None else port, app)
    logger.info("Server is running on http://localhost:%s", server.server_port)
    try:
        server.serve_forever()
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
