#!/usr/bin/env python3
"""
Flask web application for the LearnNow tutoring marketplace API.
Features: CRUD routes for students, tutors, schools and classes, bulk class
loading, and an admin trigger for the SIS catalog refresh.
"""

from flask import Flask, jsonify, request
from werkzeug.middleware.proxy_fix import ProxyFix
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_compress import Compress
import logging
import os
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv

from learnnow.catalog.loaders import StoreBulkLoader
from learnnow.catalog.pipeline import IngestionPipeline
from learnnow.catalog.runs import RunRegistry, start_background_run
from learnnow.catalog.sis_client import CatalogConfig, SISCatalogClient
from learnnow.storage.postgres_records import PostgresRecordStore, RecordNotFound, StoreError, ValidationFailed
from learnnow.storage.resources import RESOURCES

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PG_DSN = os.environ.get('PG_DSN', 'dbname=learnnow user=learnnow password=learnnowpass host=localhost port=5432')


def add_security_headers(response):
    """Add security headers to every response"""
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
    response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
    response.headers['Referrer-Policy'] = 'no-referrer'
    response.headers['Cross-Origin-Resource-Policy'] = 'same-origin'
    return response


def handle_store_errors(label: str):
    """Decorator translating store errors into HTTP responses"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationFailed as e:
                return jsonify({'message': e.detail}), 400
            except RecordNotFound:
                return jsonify({'message': f'Cannot find {label}'}), 404
            except StoreError as e:
                logger.error(f"Database error in {f.__name__}: {e}")
                return jsonify({'message': 'Database temporarily unavailable', 'retry': True}), 503
            except Exception as e:
                logger.error(f"Unexpected error in {f.__name__}: {e}", exc_info=True)
                return jsonify({'message': 'Internal server error'}), 500
        return decorated_function
    return decorator


def _json_object_body() -> Optional[Dict[str, Any]]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _default_pipeline_factory(store) -> Callable[[], IngestionPipeline]:
    def factory() -> IngestionPipeline:
        return IngestionPipeline(SISCatalogClient(CatalogConfig.from_env()), StoreBulkLoader(store))
    return factory


def _register_resource_routes(app: Flask, store, resource: str, label: str) -> None:
    @handle_store_errors(label)
    def list_records():
        return jsonify(store.find_all(resource))

    @handle_store_errors(label)
    def get_record(record_id):
        return jsonify(store.find_by_id(resource, record_id))

    @handle_store_errors(label)
    def create_record():
        data = _json_object_body()
        if data is None:
            return jsonify({'message': 'Request body must be a JSON object'}), 400
        return jsonify(store.create(resource, data)), 201

    @handle_store_errors(label)
    def update_record(record_id):
        data = _json_object_body()
        if data is None:
            return jsonify({'message': 'Request body must be a JSON object'}), 400
        return jsonify(store.update(resource, record_id, data))

    @handle_store_errors(label)
    def delete_record(record_id):
        return jsonify(store.delete(resource, record_id))

    app.add_url_rule(f'/{resource}', f'list_{resource}', list_records, methods=['GET'])
    app.add_url_rule(f'/{resource}', f'create_{resource}', create_record, methods=['POST'])
    app.add_url_rule(f'/{resource}/<record_id>', f'get_{resource}', get_record, methods=['GET'])
    app.add_url_rule(f'/{resource}/<record_id>', f'update_{resource}', update_record, methods=['PATCH'])
    app.add_url_rule(f'/{resource}/<record_id>', f'delete_{resource}', delete_record, methods=['DELETE'])


def create_app(
    store=None,
    registry: Optional[RunRegistry] = None,
    pipeline_factory: Optional[Callable[[], IngestionPipeline]] = None,
    config: Optional[Dict[str, Any]] = None,
) -> Flask:
    from cors_config import configure_cors

    store = store if store is not None else PostgresRecordStore(PG_DSN)
    registry = registry if registry is not None else RunRegistry()
    pipeline_factory = pipeline_factory or _default_pipeline_factory(store)

    app = Flask(__name__)
    # Trust proxy headers (X-Forwarded-Proto etc.) from the reverse proxy
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)
    app = configure_cors(app)
    app.config['SESSION_COOKIE_SECURE'] = os.environ.get('FLASK_ENV') == 'production'
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['RATELIMIT_ENABLED'] = os.environ.get('RATELIMIT_ENABLED', 'true').lower() != 'false'
    app.config.update(config or {})
    app.json.sort_keys = False
    app.extensions['learnnow'] = {'store': store, 'registry': registry}

    Compress(app)
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=["2000 per day", "200 per hour"],
        storage_uri="memory://",
    )
    limiter.init_app(app)

    app.after_request(add_security_headers)

    @app.route('/')
    def index():
        return "Welcome to the LearnNow API!"

    @app.route('/api/health')
    @limiter.exempt
    def health_check():
        """API health check endpoint"""
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'version': '1.0.0'
        })

    # Registered before the per-resource rules so it never reads as an id.
    @app.route('/classes/batch-data', methods=['POST'])
    @limiter.limit("30 per minute")
    @handle_store_errors('class')
    def insert_class_batch():
        """Insert an array of classes; one invalid record rejects the whole batch."""
        data = request.get_json(silent=True)
        if not isinstance(data, list):
            return jsonify({'message': 'Request body must be a JSON array of classes'}), 400
        inserted = store.insert_many('classes', data)
        logger.info(f"Batch inserted {len(inserted)} classes")
        return jsonify(inserted), 201

    for res in RESOURCES.values():
        _register_resource_routes(app, store, res.name, res.label)

    @app.route('/admin/catalog-refresh', methods=['POST'])
    @limiter.limit("5 per minute")
    def trigger_catalog_refresh():
        """Start a catalog refresh in the background and return its run id."""
        run = start_background_run(pipeline_factory, registry)
        logger.info(f"[catalog] run={run.run_id} started from admin API")
        return jsonify({
            'run_id': run.run_id,
            'status': run.status,
            'status_url': f"/admin/catalog-refresh/{run.run_id}",
        }), 202

    @app.route('/admin/catalog-refresh', methods=['GET'])
    def list_catalog_refreshes():
        return jsonify([r.to_dict() for r in registry.list()])

    @app.route('/admin/catalog-refresh/<run_id>', methods=['GET'])
    def get_catalog_refresh(run_id):
        run = registry.get(run_id)
        if run is None:
            return jsonify({'message': 'Cannot find run'}), 404
        return jsonify(run.to_dict())

    @app.errorhandler(404)
    def not_found(error):
        """Custom 404 handler"""
        return jsonify({'message': 'Endpoint not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'message': 'Method not allowed'}), 405

    @app.errorhandler(429)
    def rate_limit_handler(error):
        """Custom rate limit handler"""
        return jsonify({
            'message': 'Rate limit exceeded',
            'retry_after': 60
        }), 429

    @app.errorhandler(500)
    def internal_error(error):
        """Custom 500 handler"""
        logger.error(f"Internal server error: {error}")
        return jsonify({'message': 'Internal server error'}), 500

    return app


app = create_app()


if __name__ == '__main__':
    from learnnow.storage.postgres_schema import ensure_postgres_schema

    try:
        ensure_postgres_schema(PG_DSN)
    except Exception as e:
        logger.error(f"Postgres schema init failed: {e}")
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=os.environ.get('FLASK_ENV') == 'development')
