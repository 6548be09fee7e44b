"""
Production Server Configuration

Uvicorn workers under Gunicorn. The in-process dashboard dedup tier and
rate limiter are per worker; Redis is the shared cache tier.
"""

import multiprocessing
import os

bind = f"{os.getenv('API_HOST', '0.0.0.0')}:{os.getenv('API_PORT', '8000')}"

# Each dashboard request holds several database sessions at once
workers = int(os.getenv("WEB_CONCURRENCY", min(multiprocessing.cpu_count() + 1, 8)))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 5000
max_requests_jitter = 500
timeout = 60
graceful_timeout = 20
keepalive = 5

proc_name = "pos-backoffice-analytics"

errorlog = "-"
accesslog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(D)sus store=%({x-store-id}i)s'


def post_fork(server, worker):
    server.log.info("Analytics worker %s started", worker.pid)


def worker_abort(worker):
    worker.log.warning("Analytics worker %s aborted, likely a slow aggregation", worker.pid)
