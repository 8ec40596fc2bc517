import logging, json, sys, time, os

BASE_LOGGER = "cipherline"

_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, name, msg plus any `extra` fields."""

    converter = time.gmtime  # UTC timestamps

    def format(self, record):
        doc = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        for k, v in vars(record).items():
            if k not in _RESERVED and not k.startswith("_"):
                doc[k] = v
        if record.exc_info:
            doc["exc"] = self.formatException(record.exc_info)
        return json.dumps(doc, default=str)


def get_logger(name=BASE_LOGGER, level=None, to_file=None):
    """
    Unified structured logger for all Cipherline components.

    Handlers live on the base "cipherline" logger only; component loggers
    ("cipherline.keystore", ...) propagate to it. Passing `level` or
    `to_file` (re)configures the logger that was asked for.
    """
    base = logging.getLogger(BASE_LOGGER)
    if not base.handlers:
        base.setLevel(os.getenv("CIPHERLINE_LOG_LEVEL", "INFO").upper())
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        base.addHandler(handler)

    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level.upper() if isinstance(level, str) else level)

    if to_file:
        # Ensure the directory exists before writing
        os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
        target = os.path.abspath(to_file)
        if not any(getattr(h, "baseFilename", None) == target for h in logger.handlers):
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(JsonFormatter())
            logger.addHandler(file_handler)

    return logger
