"""Tests for logging helpers."""

import logging

import pytest

from chapter_watch.utils.logging import CorrelationAdapter, configure_logging, new_correlation_id


@pytest.mark.unit
def test_correlation_id_shape():
    cid = new_correlation_id()
    assert len(cid) == 8
    int(cid, 16)
    assert cid != new_correlation_id()


@pytest.mark.unit
def test_adapter_prefixes_messages(caplog):
    caplog.set_level(logging.INFO, logger="chapter_watch.test")
    log = CorrelationAdapter(logging.getLogger("chapter_watch.test"), "deadbeef")
    log.info("attempt %d", 2)
    assert caplog.records[-1].getMessage() == "[deadbeef] attempt 2"
    assert caplog.records[-1].cid == "deadbeef"


@pytest.mark.unit
def test_configure_logging_writes_file(tmp_path, reset_package_logger):
    log_file = tmp_path / "logs" / "fetch.log"
    configure_logging(verbose=False, log_file=log_file)
    logger = logging.getLogger("chapter_watch.test")
    logger.debug("debug line")
    for handler in logging.getLogger("chapter_watch").handlers:
        handler.flush()
    assert "debug line" in log_file.read_text(encoding="utf-8")
