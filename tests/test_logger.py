import json
import logging

from cipherline_core.logger import JsonFormatter, get_logger


def test_json_formatter_includes_extras():
    logger = logging.getLogger("cipherline.test")
    record = logger.makeRecord("cipherline.test", logging.INFO, __file__, 1, "hello %s", ("bob",), None,
                               extra={"event": "key.stored"})
    doc = json.loads(JsonFormatter().format(record))
    assert doc["msg"] == "hello bob"
    assert doc["level"] == "INFO"
    assert doc["name"] == "cipherline.test"
    assert doc["event"] == "key.stored"
    assert doc["ts"].endswith("Z")


def test_json_formatter_includes_exception():
    logger = logging.getLogger("cipherline.test")
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        import sys
        record = logger.makeRecord("cipherline.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
    doc = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in doc["exc"]


def test_components_share_base_handler(tmp_path):
    base = get_logger()
    child = get_logger("cipherline.component")
    assert len(base.handlers) >= 1
    assert child.handlers == []
    assert child.propagate

    path = tmp_path / "logs" / "component.log"
    logger = get_logger("cipherline.filelog", to_file=str(path))
    get_logger("cipherline.filelog", to_file=str(path))
    try:
        assert len(logger.handlers) == 1
        logger.warning("written to file")
        line = path.read_text(encoding="utf-8").strip().splitlines()[-1]
        assert json.loads(line)["msg"] == "written to file"
    finally:
        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()
