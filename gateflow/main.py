"""
GateFlow - Platform API
Process entry point: logging setup and the application instance
"""
import logging
import os

from gateflow import create_app
from gateflow.config import DevelopmentConfig, ProductionConfig
from gateflow.db import ensure_data_dir, init_db

# Configure logging
log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

CONFIGS = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
}


def get_config_class():
    env = os.environ.get('GATEFLOW_ENV', 'production').lower()
    if env not in CONFIGS:
        logger.warning(f"Unknown GATEFLOW_ENV '{env}', using production settings")
    return CONFIGS.get(env, ProductionConfig)


def initialize(flask_app) -> None:
    """Prepare storage before serving requests."""
    try:
        ensure_data_dir(flask_app.config['DATABASE_PATH'])
    except OSError as exc:
        logger.warning("Failed to ensure database directory %s", exc)
    init_db(
        flask_app.config['DATABASE_PATH'],
        admin_email=flask_app.config['ADMIN_EMAIL'],
        admin_password=flask_app.config['ADMIN_PASSWORD'],
    )


app = create_app(get_config_class())

if __name__ == '__main__':
    initialize(app)
    app.run(host='0.0.0.0', port=app.config['PORT'], debug=False)
