import os
import multiprocessing

wsgi_app = "config.wsgi:application"

# Bind to all interfaces on the internal port
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")

workers = int(os.getenv("WEB_CONCURRENCY", max(2, multiprocessing.cpu_count() // 2 or 1)))
threads = int(os.getenv("GUNICORN_THREADS", "2"))
worker_class = "gthread"
# Transitions are short; anything slower is a stuck store call
timeout = int(os.getenv("GUNICORN_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", "5"))

# Log to stdout/stderr so Docker can collect logs
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOGLEVEL", "info")

forwarded_allow_ips = os.getenv("FORWARDED_ALLOW_IPS", "127.0.0.1")
