# CORS configuration
import logging
import os

from flask import request
from flask_cors import CORS

logger = logging.getLogger(__name__)

DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5002",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5002",
]


def allowed_origins():
    raw = os.environ.get("CORS_ORIGINS", "")
    extra = [o.strip() for o in raw.split(",") if o.strip()]
    return DEFAULT_ORIGINS + extra


def configure_cors(app):
    # Dashboard and API share one origin in production; extra origins come from CORS_ORIGINS
    CORS(app, resources={
        r"/api/*": {
            "origins": allowed_origins(),
            "methods": ["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "X-Requested-With"],
        }
    })

    @app.after_request
    def log_cors(response):
        origin = request.headers.get('Origin')
        if origin:
            logger.debug(f"CORS - Origin: {origin} Method: {request.method} Response: {response.status_code}")
        return response

    return app
