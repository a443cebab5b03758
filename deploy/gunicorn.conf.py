"""
Gunicorn configuration for the Prize Pool Settlement API.

    gunicorn prizepool.main:app -c deploy/gunicorn.conf.py
"""
import os
import multiprocessing

# Server socket
bind = os.environ.get("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.environ.get("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = 120
keepalive = 5

# Logging
accesslog = os.environ.get("GUNICORN_ACCESS_LOG", "-")
errorlog = os.environ.get("GUNICORN_ERROR_LOG", "-")
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "prizepool"

# Server mechanics
daemon = False
pidfile = "/tmp/prizepool-gunicorn.pid"

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def when_ready(server):
    """Called just after the server is started."""
    if os.environ.get("SWEEP_IN_PROCESS", "").lower() in ("true", "1", "yes", "on"):
        # every worker would run its own sweep loop
        server.log.warning("SWEEP_IN_PROCESS is set with multiple workers; prefer Celery beat")
