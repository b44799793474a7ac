"""
Flask application factory and management commands
"""
import os
from datetime import datetime
from typing import Callable, Optional

import click
import structlog
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from api import register_blueprints
from config import Settings
from core.ordering_platform import OrderingPlatform
from errors import OrderingError
from logging_config import configure_logging

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None,
               clock: Callable[[], datetime] = datetime.now) -> Flask:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, settings.log_json)

    app = Flask(__name__)
    app.secret_key = settings.secret_key
    app.json.ensure_ascii = False
    app.extensions["ordering_platform"] = OrderingPlatform(settings, clock)

    register_blueprints(app)
    register_error_handlers(app)
    register_commands(app)

    @app.route('/health')
    def health():
        """Health check endpoint"""
        return jsonify({'status': 'ok', 'message': 'Ordering API is running'})

    return app


def register_error_handlers(app: Flask):
    @app.errorhandler(OrderingError)
    def handle_ordering_error(error: OrderingError):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({'message': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        logger.exception("unhandled_error", error=str(error))
        return jsonify({'message': 'Ocurrió un error inesperado.'}), 500


def register_commands(app: Flask):
    platform: OrderingPlatform = app.extensions["ordering_platform"]

    @app.cli.command("init-db")
    def init_db_command():
        """Create the database schema"""
        platform.init_database()
        click.echo(f"Database ready at {platform.settings.database_path}")

    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Load demo restaurants, catalog and a demo customer"""
        from init_db import seed_demo

        result = seed_demo(platform)
        click.echo(f"Demo customer #{result['customer_id']} token: {result['api_token']}")

    @app.cli.command("expire-points")
    def expire_points_command():
        """Expire the balance of customers inactive for too long"""
        expired = platform.points_service.expire_inactive_points()
        click.echo(f"Expired points for {expired} customer(s)")

    @app.cli.command("order-status")
    @click.argument("order_id", type=int)
    @click.argument("status")
    @click.option("--notes", default=None, help="Note stored with the status change")
    def order_status_command(order_id, status, notes):
        """Move an order to a new status (kitchen and dispatch use)"""
        try:
            order = platform.order_service.update_status(platform.order_service.get_order(order_id), status,
                                                         notes=notes, changed_by_type="admin")
        except OrderingError as e:
            raise click.ClickException(e.message)
        click.echo(f"Order {order.order_number} is now {order.status}")


if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('DEBUG', 'False').lower() == 'true'

    print("=== Ordering API Server ===")
    print(f"Starting server on http://localhost:{port}")
    print("Press Ctrl+C to stop")

    create_app().run(
        host='0.0.0.0',
        port=port,
        debug=debug
    )
