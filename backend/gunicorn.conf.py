"""Gunicorn configuration for production deployment.

Run with: gunicorn -c gunicorn.conf.py fleetbooks.main:app
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
backlog = 2048

# Each worker keeps its own in-process single-flight table; Redis is shared
workers = int(os.getenv("GUNICORN_WORKERS", min(multiprocessing.cpu_count() * 2 + 1, 8)))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
max_requests = 10000
max_requests_jitter = 1000

# Wide-range P&L comparisons can take a while on a cold cache
timeout = 60
graceful_timeout = 30
keepalive = 5

proc_name = "fleetbooks-reporting-api"

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

daemon = False
pidfile = None
umask = 0
user = None
group = None
tmp_upload_dir = None

# SSL: set GUNICORN_KEYFILE and GUNICORN_CERTFILE
keyfile = os.getenv("GUNICORN_KEYFILE")
certfile = os.getenv("GUNICORN_CERTFILE")


def post_fork(server, worker):
    """Called just after a worker has been forked."""
    server.log.info("Worker spawned (pid: %s)", worker.pid)


def worker_exit(server, worker):
    """Called just after a worker has been exited."""
    server.log.info("Worker exited (pid: %s)", worker.pid)
