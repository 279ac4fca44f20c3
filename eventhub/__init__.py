from flask import Flask, jsonify, send_from_directory
from flask_cors import CORS
from dotenv import load_dotenv
from werkzeug.exceptions import InternalServerError
import os
from eventhub.extensions import db, migrate, jwt, limiter
from eventhub.utils.email import mail
from datetime import timedelta
import logging

# Load environment variables
load_dotenv()


def create_app(test_config=None):
    app = Flask(__name__)

    # Set testing mode from environment variable
    app.config["TESTING"] = os.getenv("FLASK_ENV") in ["development", "testing"]

    # Configure logging
    logging.basicConfig(level=logging.INFO)
    app.logger.setLevel(logging.INFO)

    # Configure database
    app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv(
        "DATABASE_URL", "postgresql://localhost/eventhub"
    )
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    # Configure JWT
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY", "your-secret-key")
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(days=1)
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    app.config["JWT_HEADER_NAME"] = "Authorization"
    app.config["JWT_HEADER_TYPE"] = "Bearer"

    # Email configuration
    app.config["MAIL_SERVER"] = os.getenv("MAIL_SERVER")
    app.config["MAIL_PORT"] = int(os.getenv("MAIL_PORT", 587))
    app.config["MAIL_USE_TLS"] = os.getenv("MAIL_USE_TLS", "true").lower() in ["true", "1", "t"]
    app.config["MAIL_USERNAME"] = os.getenv("MAIL_USERNAME")
    app.config["MAIL_PASSWORD"] = os.getenv("MAIL_PASSWORD")
    app.config["MAIL_DEFAULT_SENDER"] = os.getenv("MAIL_DEFAULT_SENDER")
    app.config["CLIENT_URL"] = os.getenv("CLIENT_URL", "http://localhost:3000")

    # Calendar files and public links
    app.config["SITE_BASE_URL"] = os.getenv("SITE_BASE_URL", app.config["CLIENT_URL"])
    app.config["EVENTS_ORGANIZER_EMAIL"] = os.getenv(
        "EVENTS_ORGANIZER_EMAIL", "events@example.com"
    )
    app.config["CALENDAR_NAME"] = os.getenv("CALENDAR_NAME", "EventHub Events")
    app.config["CALENDAR_PRODID"] = os.getenv("CALENDAR_PRODID", "-//EventHub//Events//EN")
    app.config["UPLOAD_FOLDER"] = os.getenv(
        "UPLOAD_FOLDER",
        os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "uploads"),
    )

    # Rate limiting
    app.config["RATELIMIT_STORAGE_URI"] = os.getenv("LIMITER_STORAGE_URL", "memory://")

    if test_config:
        app.config.update(test_config)

    # Initialize Flask extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)
    limiter.init_app(app)

    # Register blueprints
    from eventhub.routes.user_routes import user_bp
    from eventhub.routes.event_routes import event_bp

    app.register_blueprint(user_bp, url_prefix="/api/user")
    app.register_blueprint(event_bp, url_prefix="/api/events")

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
        expose_headers=["Content-Type", "Content-Disposition"],
    )

    @app.errorhandler(InternalServerError)
    def handle_internal_error(error):
        # Flask has already logged the original exception with its traceback
        db.session.rollback()
        return jsonify({"error": "An unexpected error occurred"}), 500

    # Serve uploaded event images
    @app.route("/uploads/<path:filename>")
    def serve_upload(filename):
        return send_from_directory(app.config["UPLOAD_FOLDER"], filename)

    return app
