from flask import Flask, jsonify
from flask_cors import CORS
from dotenv import load_dotenv
import os
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from eventpilot.extensions import db, migrate, jwt
from eventpilot.exceptions import EventPilotError
from eventpilot.utils.email import mail
from datetime import timedelta
import logging

# Load environment variables
load_dotenv()


def _env_flag(name, default="false"):
    return os.getenv(name, default).lower() in ["true", "1", "t"]


def create_app(config=None):
    app = Flask(__name__)

    # Set testing mode from environment variable
    app.config["TESTING"] = os.getenv("FLASK_ENV") in ["development", "testing"]

    # Configure logging
    logging.basicConfig(level=logging.INFO)
    app.logger.setLevel(logging.INFO)

    # Configure database
    app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv(
        "DATABASE_URL", "postgresql://localhost/eventpilot"
    )
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    # Configure JWT
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY", "your-secret-key")
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(days=1)
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    app.config["JWT_HEADER_NAME"] = "Authorization"
    app.config["JWT_HEADER_TYPE"] = "Bearer"

    # Email configuration
    app.config['MAIL_SERVER'] = os.getenv('MAIL_SERVER')
    app.config['MAIL_PORT'] = int(os.getenv('MAIL_PORT', 587))
    app.config['MAIL_USE_TLS'] = os.getenv('MAIL_USE_TLS', 'true').lower() in ['true', '1', 't']
    app.config['MAIL_USERNAME'] = os.getenv('MAIL_USERNAME')
    app.config['MAIL_PASSWORD'] = os.getenv('MAIL_PASSWORD')
    app.config['CLIENT_URL'] = os.getenv('CLIENT_URL', 'http://localhost:3000')

    # Stripe configuration
    app.config["STRIPE_SECRET_KEY"] = os.getenv("STRIPE_SECRET_KEY")
    app.config["STRIPE_PUBLISHABLE_KEY"] = os.getenv("STRIPE_PUBLISHABLE_KEY", "")
    app.config["STRIPE_WEBHOOK_SECRET"] = os.getenv("STRIPE_WEBHOOK_SECRET")

    # Gmail configuration
    app.config["GOOGLE_OAUTH_CLIENT_ID"] = os.getenv("GOOGLE_OAUTH_CLIENT_ID")
    app.config["GOOGLE_OAUTH_CLIENT_SECRET"] = os.getenv("GOOGLE_OAUTH_CLIENT_SECRET")
    app.config["GMAIL_POLL_ENABLED"] = _env_flag("GMAIL_POLL_ENABLED")
    app.config["GMAIL_POLL_INTERVAL_MINUTES"] = int(os.getenv("GMAIL_POLL_INTERVAL_MINUTES", 5))
    app.config["GMAIL_POLL_QUERY"] = os.getenv("GMAIL_POLL_QUERY", "-in:chats newer_than:1d")
    app.config["CRON_SECRET"] = os.getenv("CRON_SECRET")

    # Attachment storage
    app.config["S3_BUCKET"] = os.getenv("S3_BUCKET")
    app.config["S3_BASE_URL"] = os.getenv("S3_BASE_URL")

    app.config["RATELIMIT_STORAGE_URI"] = os.getenv("LIMITER_DATABASE_URL", "memory://")

    if config:
        app.config.update(config)

    # Implement rate limiting using flask-limiter
    Limiter(
        get_remote_address,
        app=app,
        default_limits=["150 per minute, 10000 per hour, 100000 per day"],
        storage_uri=app.config["RATELIMIT_STORAGE_URI"],
        strategy="fixed-window",
    )

    # Initialize Flask extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)

    # Register blueprints
    from eventpilot.routes.user_routes import user_bp
    from eventpilot.routes.registration_routes import registration_bp
    from eventpilot.routes.dashboard_routes import dashboard_bp
    from eventpilot.routes.webhook_routes import webhook_bp

    app.register_blueprint(user_bp, url_prefix="/api/user")
    app.register_blueprint(registration_bp, url_prefix="/api")
    app.register_blueprint(dashboard_bp, url_prefix="/api")
    app.register_blueprint(webhook_bp, url_prefix="/api")

    @app.errorhandler(EventPilotError)
    def handle_eventpilot_error(e):
        if e.status_code >= 500:
            app.logger.error(f"{type(e).__name__}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        from werkzeug.exceptions import HTTPException

        if isinstance(e, HTTPException):
            return jsonify({"message": e.description}), e.code
        db.session.rollback()
        app.logger.error(f"Unhandled error: {str(e)}", exc_info=True)
        return jsonify({"message": "Internal server error"}), 500

    # Set up CORS
    cors_origins = os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    ).split(",")
    app.logger.info(f"Initializing CORS with origins: {cors_origins}")

    CORS(
        app,
        resources={
            r"/api/*": {"origins": cors_origins},
        },
        supports_credentials=True,
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        expose_headers=["Content-Type"],
    )

    if app.config["GMAIL_POLL_ENABLED"] and not app.config["TESTING"]:
        from eventpilot.scheduler import init_scheduler

        init_scheduler(app)

    return app
