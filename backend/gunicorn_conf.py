# backend/gunicorn_conf.py

# Gunicorn config for the WhatsApp channel:
#   gunicorn -c gunicorn_conf.py agrichat.main:app
# Outbound senders run inside each worker unless RUN_SENDER_IN_PROCESS=false,
# in which case start `python -m agrichat.workers.whatsapp_sender` separately.

import os

wsgi_app = "agrichat.main:app"
bind = os.getenv("BIND", "0.0.0.0:8000")
workers = int(os.getenv("WEB_CONCURRENCY", "2"))
worker_class = "uvicorn.workers.UvicornWorker"
graceful_timeout = 30

# Behind a reverse proxy like Nginx
forwarded_allow_ips = "*"

# Access and error logs go to stdout and stderr
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info")
