"""
Gunicorn configuration for GateFlow production deployment
"""
import os

# Server socket
bind = f"0.0.0.0:{os.environ.get('PORT', '5000')}"
backlog = 2048

# Worker processes. Rate-limit counters live in RATELIMIT_STORAGE_URI; with the
# default memory:// storage every worker counts separately, so point it at
# redis:// or memcached:// before raising the worker count.
workers = int(os.environ.get('GUNICORN_WORKERS', '2'))
worker_class = 'gthread'
threads = int(os.environ.get('GUNICORN_THREADS', '4'))
max_requests = 1000
max_requests_jitter = 50
timeout = 30
graceful_timeout = 30
keepalive = 2

# Logging
accesslog = '-'  # Log to stdout
errorlog = '-'   # Log to stderr
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()
# API keys travel in headers, so the access log never records them
access_log_format = '%(h)s %(t)s "%(m)s %(U)s %(H)s" %(s)s %(b)s %(L)s'

# Process naming
proc_name = 'gateflow'

# Server mechanics
daemon = False
pidfile = None
umask = 0
forwarded_allow_ips = os.environ.get('FORWARDED_ALLOW_IPS', '127.0.0.1')

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def on_starting(server):
    """Called just before the master process is initialized."""
    storage = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    if storage.startswith('memory://') and workers > 1:
        server.log.warning("RATELIMIT_STORAGE_URI is memory://; per-key limits are enforced per worker")
    server.log.info("Starting GateFlow WSGI server...")


def when_ready(server):
    """Called just after the server is started."""
    server.log.info(f"GateFlow is ready. Listening on {bind}")


def on_exit(server):
    """Called just before exiting."""
    server.log.info("Shutting down GateFlow...")
