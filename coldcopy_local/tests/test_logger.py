from pathlib import Path
import logging
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from coldcopy_local.utils import logger as logger_module
from coldcopy_local.utils.logger import get_logger, log_row_outcome, setup_logging, truncate_for_log


def test_truncate_for_log():
    assert truncate_for_log("short", 10) == "short"
    assert truncate_for_log("abcdefghij", 4) == "abcd\n... (truncated, 10 chars total)"
    assert truncate_for_log("anything", 0) == ""
    assert truncate_for_log("anything", "many") == ""
    assert truncate_for_log(None, 5) == ""


def test_get_logger_uses_package_namespace():
    assert get_logger("pipeline").name == "coldcopy.pipeline"


def test_row_outcome_levels(caplog):
    with caplog.at_level(logging.INFO, logger="coldcopy"):
        log_row_outcome(3, 0, "completed", 1.25)
        log_row_outcome(3, 1, "failed", 0.5, error="Missing activity context")

    assert caplog.records[0].levelno == logging.INFO
    assert "Row 0 of job 3 completed in 1.25s" in caplog.records[0].getMessage()
    assert caplog.records[1].levelno == logging.WARNING
    assert caplog.records[1].getMessage().endswith("Missing activity context")


def test_setup_logging_writes_file_and_configures_once(tmp_path, monkeypatch):
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", list(root.handlers))
    monkeypatch.setattr(root, "level", root.level)
    monkeypatch.setattr(logger_module, "_logging_configured", False)
    log_file = tmp_path / "logs" / "run.log"

    logger = setup_logging("debug", log_file=str(log_file))
    get_logger("job").info("Job 1 started")
    again = setup_logging("ERROR", log_file=str(tmp_path / "other.log"))

    for handler in root.handlers:
        handler.flush()
    assert logger is again
    assert root.level == logging.DEBUG
    assert "Job 1 started" in log_file.read_text(encoding="utf-8")
    assert not (tmp_path / "other.log").exists()

    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            handler.close()
