"""
GateFlow WSGI application

    gunicorn -c gunicorn.conf.py wsgi:application
"""
import logging

from gateflow.main import app, initialize

logger = logging.getLogger(__name__)

try:
    initialize(app)
except Exception:
    logger.exception("GateFlow failed to prepare its database")
    raise

application = app
