from __future__ import annotations

import logging

from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS

from actions.subscribers import register_subscribers
from cache_layer import BrandingCache
from config import Config
from db import Base, init_engine
from events import EventBus
from app.middlewares.error_handler import init_error_handlers
from app.middlewares.logging import init_request_logging
from app.middlewares.rate_limit import init_rate_limiting
from app.middlewares.request_id import init_request_id
from app.middlewares.security_headers import init_security_headers
from app.routes.appointments import appointments_bp
from app.routes.auth import auth_bp
from app.routes.contracts import contracts_bp
from app.routes.core import core_bp
from app.routes.dev import dev_bp
from app.routes.employment_forms import employment_forms_bp
from app.routes.hiring import hiring_bp
from app.routes.onboarding import onboarding_bp
from app.routes.organizations import organizations_bp
from app.utils.logging import setup_logging
from services.mailer import build_mailer
from services.notifications import Notifier


def create_app(cfg: Config | None = None) -> Flask:
    load_dotenv()

    cfg = cfg or Config()
    cfg.validate()
    setup_logging(cfg.LOG_LEVEL)

    engine = init_engine(cfg.DATABASE_URL)
    import models  # noqa: F401  registers tables on Base

    Base.metadata.create_all(bind=engine)

    app = Flask(__name__)
    app.config["CFG"] = cfg

    # Performance: skip JSON key sorting for faster serialization
    app.config["JSON_SORT_KEYS"] = False
    app.json.sort_keys = False

    CORS(
        app,
        origins=cfg.ALLOWED_ORIGINS,
        supports_credentials=False,
        allow_headers=["Content-Type", "Authorization", "X-Request-ID", "X-Organization-ID"],
        expose_headers=["X-Request-ID"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        max_age=3600,
    )

    branding = BrandingCache(ttl_seconds=cfg.BRANDING_CACHE_TTL_SECONDS, max_items=cfg.BRANDING_CACHE_MAX_ITEMS)
    notifier = Notifier(cfg.NOTIFY_MODE)
    mailer = build_mailer(cfg)
    bus = EventBus(runner=notifier)
    register_subscribers(bus, mailer=mailer, cfg=cfg, branding=branding)

    app.extensions["branding_cache"] = branding
    app.extensions["notifier"] = notifier
    app.extensions["mailer"] = mailer
    app.extensions["event_bus"] = bus

    init_request_id(app)
    init_security_headers(app)
    init_rate_limiting(app)
    init_request_logging(app)
    init_error_handlers(app)

    app.register_blueprint(core_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(organizations_bp, url_prefix="/api/v1/organizations")
    app.register_blueprint(onboarding_bp, url_prefix="/api/v1/onboarding")
    app.register_blueprint(employment_forms_bp, url_prefix="/api/v1/employment-forms")
    app.register_blueprint(contracts_bp, url_prefix="/api/v1/contracts")
    app.register_blueprint(appointments_bp, url_prefix="/api/v1/appointments")
    app.register_blueprint(hiring_bp, url_prefix="/api/v1/hiring")
    if not cfg.IS_PRODUCTION:
        app.register_blueprint(dev_bp, url_prefix="/api/v1/dev")

    logging.getLogger("api").info(
        "app ready env=%s mail=%s notify=%s hiring=%s approval_chain=%s",
        cfg.ENV,
        cfg.MAIL_BACKEND,
        cfg.NOTIFY_MODE,
        cfg.HIRING_MODULE_ENABLED,
        cfg.FORM_APPROVAL_CHAIN,
    )
    return app
