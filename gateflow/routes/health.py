from __future__ import annotations

import sys
from typing import Callable

from flask import Blueprint, jsonify


def create_health_blueprint(*, db_factory: Callable[[], object], scheduler, payment_provider, version: str):
    """Create health and version routes with injected dependencies."""
    blueprint = Blueprint('health', __name__)

    @blueprint.route('/health')
    def health_check():
        """Health check endpoint for orchestration and monitoring."""
        health = {
            'status': 'healthy',
            'version': version,
            'checks': {},
        }

        # Check database connectivity
        try:
            conn = db_factory()
            try:
                conn.execute('SELECT 1')
            finally:
                conn.close()
            health['checks']['database'] = {'status': 'ok'}
        except Exception as e:
            health['status'] = 'unhealthy'
            health['checks']['database'] = {'status': 'error', 'message': str(e)}

        # Scheduler runs the rotation grace sweep
        if scheduler is None:
            health['checks']['scheduler'] = {'status': 'disabled'}
        elif scheduler.running:
            health['checks']['scheduler'] = {'status': 'ok', 'jobs': len(scheduler.get_jobs())}
        else:
            health['status'] = 'degraded'
            health['checks']['scheduler'] = {'status': 'error', 'message': 'Scheduler not running'}

        health['checks']['payment_provider'] = {
            'status': 'ok' if payment_provider.name != 'disabled' else 'disabled',
            'provider': payment_provider.name,
        }

        status_code = 503 if health['status'] == 'unhealthy' else 200
        return jsonify(health), status_code

    @blueprint.route('/api/version')
    def get_version():
        """Get application version and build info."""
        return jsonify({
            'version': version,
            'python_version': sys.version.split()[0],
            'api_version': 'v1',
        })

    return blueprint
