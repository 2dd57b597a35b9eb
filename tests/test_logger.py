"""Test logging setup and the criteria failure report"""

import logging

import pytest

from playlist_gen.core.logger import (
    get_logger,
    log_criteria_failure,
    setup_logging,
    shutdown_logging,
)


@pytest.fixture
def log_dir(temp_dir):
    directory = temp_dir / "logs"
    setup_logging(directory)
    yield directory
    shutdown_logging()


def read_single(log_dir, prefix):
    files = list(log_dir.glob(f"{prefix}_*.log"))
    assert len(files) == 1
    return files[0].read_text(encoding="utf-8")


class TestLogging:
    """Test file outputs"""

    def test_creates_log_files(self, log_dir):
        names = sorted(path.name.rsplit("_", 2)[0] for path in log_dir.iterdir())
        assert names == ["criteria_failures", "log_errors", "log_full"]

    def test_errors_only_in_error_log(self, log_dir):
        logger = get_logger("playlist_gen.test")
        logger.debug("debug detail")
        logger.error("something broke")
        shutdown_logging()

        full = read_single(log_dir, "log_full")
        errors = read_single(log_dir, "log_errors")
        assert "debug detail" in full and "something broke" in full
        assert "something broke" in errors
        assert "debug detail" not in errors

    def test_criteria_failure_report(self, log_dir):
        logger = get_logger("playlist_gen.test")
        logger.error("ordinary error")
        log_criteria_failure(logger, "Chill", 'genre ~ "lofi" and', "Unexpected end of criteria")
        shutdown_logging()

        report = read_single(log_dir, "criteria_failures")
        assert report == (
            "Label: Chill\n"
            'Criteria: genre ~ "lofi" and\n'
            "Reason: Unexpected end of criteria\n\n"
        )
        assert "Skipping smart label 'Chill'" in read_single(log_dir, "log_errors")

    def test_shutdown_removes_handlers(self, log_dir):
        shutdown_logging()
        assert logging.getLogger().handlers == []
