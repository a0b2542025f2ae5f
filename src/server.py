import hmac
import logging
from typing import Callable, Optional, TypeAlias

from flask import Flask, abort, jsonify, request
from waitress import serve

logger = logging.getLogger(__name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"

UpdateCallback: TypeAlias = Callable[[dict], None]


def create_app(
    on_update: Optional[UpdateCallback] = None, secret: Optional[str] = None
) -> Flask:
    app = Flask(__name__)

    @app.route("/", methods=["GET"])
    def health_check():
        return jsonify(status="UP"), 200

    # The webhook route only exists in webhook mode
    if on_update is None:
        return app

    @app.route("/webhook", methods=["POST"])
    def webhook():
        if secret and not hmac.compare_digest(request.headers.get(SECRET_HEADER, ""), secret):
            logger.warning("Rejected webhook call with a wrong secret token")
            abort(403)

        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            abort(400)

        on_update(payload)

        return jsonify(ok=True), 200

    return app


def main(app: Flask, port: int) -> None:
    serve(app, host="0.0.0.0", port=port)
