"""Test log level filtering in file sinks."""

import tempfile
from pathlib import Path

import pytest

from pullguard.core.log import (
    ConsoleSink,
    FileSink,
    OTLPSink,
    level_name,
    setup_logger,
)


@pytest.fixture
def temp_log_dir():
    """Create temporary directory for log files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def _file_logger(log_dir, level):
    log_file = log_dir / f"{level}.log"
    logger = setup_logger(
        log_root=log_dir,
        repo_name="test",
        console=ConsoleSink(enabled=False),
        otlp=OTLPSink(enabled=False),
        file=FileSink(enabled=True, level=level, path=str(log_file)),
    )
    return logger, log_file


def test_trace_level_includes_all(temp_log_dir):
    logger, log_file = _file_logger(temp_log_dir, "trace")

    logger.trace("TRACE message - should be included")
    logger.debug("DEBUG message - should be included")
    logger.info("INFO message - should be included")
    logger.close()

    content = log_file.read_text()
    assert "TRACE message" in content
    assert "DEBUG message" in content
    assert "INFO message" in content


def test_spew_is_an_alias_for_trace(temp_log_dir):
    logger, log_file = _file_logger(temp_log_dir, "spew")

    logger.log("spew", "SPEW message - should be included")
    logger.close()

    assert "SPEW message" in log_file.read_text()


def test_debug_level_filters_trace(temp_log_dir):
    logger, log_file = _file_logger(temp_log_dir, "debug")

    logger.trace("TRACE message - should be filtered")
    logger.debug("DEBUG message - should be included")
    logger.warn("WARN message - should be included")
    logger.close()

    content = log_file.read_text()
    assert "TRACE message" not in content
    assert "DEBUG message" in content
    assert "WARN message" in content


def test_info_level_filters_debug(temp_log_dir):
    logger, log_file = _file_logger(temp_log_dir, "info")

    logger.debug("DEBUG message - should be filtered")
    logger.info("INFO message - should be included")
    logger.error("ERROR message - should be included")
    logger.close()

    content = log_file.read_text()
    assert "DEBUG message" not in content
    assert "INFO message" in content
    assert "ERROR message" in content


def test_file_lines_carry_level_and_attributes(temp_log_dir):
    logger, log_file = _file_logger(temp_log_dir, "info")

    logger.info("Prediction complete", kind="rebase", clean=True)
    logger.close()

    line = log_file.read_text().splitlines()[0]
    assert "info" in line
    assert "Prediction complete" in line
    assert "kind='rebase'" in line


def test_path_template_expands_repo_name(temp_log_dir):
    logger = setup_logger(
        log_root=temp_log_dir,
        repo_name="myrepo",
        console=ConsoleSink(enabled=False),
        file=FileSink(enabled=True, level="info"),
    )
    logger.info("hello")
    logger.close()

    assert (temp_log_dir / "myrepo" / "pullguard.log").is_file()


@pytest.mark.parametrize("level_num, name", [
    (1, "trace"),
    (5, "debug"),
    (9, "info"),
    (13, "warn"),
    (17, "error"),
    (21, "fatal"),
])
def test_level_name(level_num, name):
    assert level_name(level_num) == name
