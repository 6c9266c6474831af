# Gunicorn settings for MallSurvey Collect. Values come from MALLSURVEY_GUNICORN_*.
import config
from config import _env, _env_int

bind = _env("MALLSURVEY_GUNICORN_BIND", f"{config.HOST}:{config.PORT}")
workers = _env_int("MALLSURVEY_GUNICORN_WORKERS", 2)
worker_class = "gthread"
threads = _env_int("MALLSURVEY_GUNICORN_THREADS", 4)
timeout = _env_int("MALLSURVEY_GUNICORN_TIMEOUT", 60)
graceful_timeout = _env_int("MALLSURVEY_GUNICORN_GRACEFUL_TIMEOUT", 30)

wsgi_app = "wsgi:app"
loglevel = config.LOG_LEVEL.lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(L)ss rid=%({x-request-id}o)s'


def post_fork(server, worker):
    from logging_setup import setup_logging

    setup_logging(config.LOG_LEVEL, config.LOG_JSON)
    server.log.info("Worker %s ready", worker.pid)
