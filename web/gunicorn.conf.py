import os

# Each placement runs on its own worker thread and blocks on the rewards
# provider and the database in sequence, so threads, not processes, carry
# the concurrency.
wsgi_app = "loyalty.wsgi:application"
bind = f"0.0.0.0:{os.getenv('PORT', '8000')}"

workers = int(os.getenv("GUNI_WORKERS", str(min(max(2, (os.cpu_count() or 1)), 4))))
worker_class = "gthread"
threads = int(os.getenv("GTHREADS", "8"))

# Must stay above REWARDS_TIMEOUT_SECS times the three provider calls
timeout = int(os.getenv("GUNI_TIMEOUT", "30"))
graceful_timeout = int(os.getenv("GUNI_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNI_KEEPALIVE", "5"))

preload_app = True
max_requests = int(os.getenv("GUNI_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("GUNI_MAX_REQUESTS_JITTER", "200"))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNI_LOGLEVEL", "info")
