import logging

from flask import Flask, request, jsonify

from sitekb import config
from sitekb.embeddings import ServiceError
from sitekb.utils import create_chat_service

logger = logging.getLogger(__name__)

ERROR_REPLY = "Sorry, the site guide ran into a server error. Try again in a bit."


def create_app(service=None):
    app = Flask(__name__)
    app.config["CHAT_SERVICE"] = service or create_chat_service()

    @app.route("/health", methods=["GET"])
    def health():
        chunks = len(app.config["CHAT_SERVICE"].retriever.store)
        return jsonify({"status": "ok", "chunks": chunks})

    @app.route("/chat", methods=["POST"])
    def chat():
        payload = request.get_json(force=True, silent=True)
        if not isinstance(payload, dict):
            return jsonify({"error": "Invalid JSON body"}), 400

        message = payload.get("message")
        if not message or not isinstance(message, str) or message.strip() == "":
            return jsonify({"error": "message is required and must be a non-empty string"}), 400

        history = payload.get("history") or []
        if not isinstance(history, list):
            return jsonify({"error": "history must be a list"}), 400
        history = [
            t for t in history
            if isinstance(t, dict) and isinstance(t.get("user"), str) and isinstance(t.get("assistant"), str)
        ]

        try:
            reply = app.config["CHAT_SERVICE"].reply(message, history)
        except ServiceError:
            logger.exception("chat request failed")
            return jsonify({"reply": ERROR_REPLY}), 500

        return jsonify({"reply": reply})

    return app


def main():
    config.setup_logging()
    app = create_app()
    app.run(host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
