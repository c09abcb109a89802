import logging, os, json, sys

LOG_EXTRA_KEYS = [
    "trace_id", "method", "path", "status", "duration_ms",
    "user_id", "service", "event_id", "remote_event_id", "gmail_id",
    "error_type", "reason", "synced", "failed", "total", "stored",
]

class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = {
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k in LOG_EXTRA_KEYS:
            if hasattr(record, k):
                base[k] = getattr(record, k)
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False, default=str)

def init_logging():
    level = os.getenv("LOG_LEVEL","INFO").upper()
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(level)
    logging.getLogger("uvicorn.access").propagate = False
    logging.getLogger("uvicorn.error").propagate = False
    # discovery cache warnings are noise with static discovery documents
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
