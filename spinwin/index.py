#!/usr/bin/env python3
"""
🎰 SPINWIN V2.0 — Application entry point (serverless + Supabase Postgres)
"""

import logging
from flask import Flask
from flask_cors import CORS
from .config import config
from .database import init_database
from .security import add_security_headers, global_rate_limit_check
from .realtime import realtime_bp
from .routes_admin import admin_bp
from .routes_cron import cron_bp
from .routes_lottery import lottery_bp
from .routes_shop import shop_bp
from .routes_social import social_bp
from .routes_spin import spin_bp
from .routes_tasks import tasks_bp
from .routes_user import user_bp
from .routes_wallet import wallet_bp

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BLUEPRINTS = (admin_bp, user_bp, spin_bp, tasks_bp, wallet_bp, shop_bp, lottery_bp, social_bp, cron_bp, realtime_bp)


def create_app():
    app = Flask(__name__)
    CORS(app, origins=config.ALLOWED_ORIGINS)
    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)
    app.before_request(global_rate_limit_check)
    app.after_request(add_security_headers)
    return app


app = create_app()

# Initialize on cold start
if config.DATABASE_URL:
    init_database()


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=5020, debug=False)
