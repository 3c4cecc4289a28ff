"""Test module for Logging."""
import os
import pathlib

import pytest


def test_log(stub_controller):
    """Test basic log operation outside model operation."""
    controller = stub_controller
    log_config = controller.config.logging
    logger = controller.logger

    class TestException(Exception):
        pass

    assert pathlib.Path(controller.run_dir).is_dir()

    # Use an error to test the recording of error messages
    try:
        logger.log("a message")  # default log level is INFO
        logger.log("A status", level="STATUS")
        logger.log("detailed message", level="DETAIL")
        logger.clear_msg_cache()
        with logger.log_start_end("Running a set of steps"):
            logger.log("Indented message with timestamp")
            logger.log("Indented displayed message with timestamp", level="STATUS")
            logger.log("A debug message not indented", level="DEBUG", indent=False)
            logger.log("A debug message", level="DEBUG")
            logger.log("A trace message", level="TRACE")
            if logger.debug_enabled:
                # only generate this report if logging DEBUG
                logger.log("A debug report that takes time to produce", level="DEBUG")
        logger.log("Warning", level="WARN")

        raise TestException("an error")
    except TestException:
        logger.log("TestException caught", level="ERROR")

    # the run_file records the high-level "STATUS" messages and above
    with open(os.path.join(controller.run_dir, log_config.run_file_path), "r") as f:
        text = f.readlines()
    assert len(text) == 6  # 4 status, 1 warning, 1 error
    assert text[0].endswith("STATUS: A status\n")
    assert text[1].endswith("STATUS: Start Running a set of steps\n")
    assert text[2].endswith("STATUS:   Indented displayed message with timestamp\n")
    assert text[3].endswith("STATUS: End Running a set of steps\n")
    assert text[4].endswith("Warning\n")
    assert text[5].endswith("TestException caught\n")

    # the main log file contains all messages at DEBUG and above
    with open(os.path.join(controller.run_dir, log_config.log_file_path), "r") as f:
        text = f.readlines()
    assert len(text) == 12
    assert text[0].endswith("INFO: a message\n")
    assert text[1].endswith("STATUS: A status\n")
    assert text[2].endswith("DETAIL: detailed message\n")
    assert text[3].endswith("STATUS: Start Running a set of steps\n")
    assert text[7].endswith("A debug message\n")
    assert text[8].endswith("A debug report that takes time to produce\n")
    for logline in text:
        assert "A trace message" not in logline


def test_log_on_error(stub_controller):
    """All cached messages, including TRACE, are written by write_error_log."""
    controller = stub_controller
    logger = controller.logger
    logger.log("A trace message", level="TRACE")
    logger.log("An info message")
    logger.write_error_log()

    path = os.path.join(controller.run_dir, controller.config.logging.log_on_error_file_path)
    with open(path, "r") as f:
        text = f.readlines()
    assert len(text) == 2
    assert text[0].startswith("TRACE")
    assert text[0].endswith("A trace message\n")
    assert text[1].startswith("INFO")


def test_log_start_end_on_error(stub_controller):
    """The indentation is restored if the block raises, and no End is recorded."""
    controller = stub_controller
    logger = controller.logger
    with pytest.raises(ValueError):
        with logger.log_start_end("Failing step"):
            raise ValueError("failed")
    logger.log("After", level="STATUS")

    with open(
        os.path.join(controller.run_dir, controller.config.logging.run_file_path), "r"
    ) as f:
        text = f.readlines()
    assert len(text) == 2
    assert text[0].endswith("STATUS: Start Failing step\n")
    assert text[1].endswith("STATUS: After\n")


def test_log_progress(stub_controller):
    controller = stub_controller
    controller.logger.log_progress("Project P1", 3, 12)

    with open(
        os.path.join(controller.run_dir, controller.config.logging.log_file_path), "r"
    ) as f:
        text = f.readlines()
    assert text[-1].endswith("DETAIL: Project P1 (3 of 12)\n")


def test_component_level_override(tmp_path):
    """The log file level can be set per component."""
    from delayalloc.config import LoggingConfig
    from delayalloc.logger import Logger

    class Config:
        logging = LoggingConfig(
            run_file_path="run.log",
            log_file_path="debug.log",
            log_file_level="DEBUG",
            log_on_error_file_path="error.log",
            component_level=(("secondary_allocation", "TRACE"),),
        )

    class Controller:
        def __init__(self, run_dir):
            self.config = Config()
            self.run_dir = run_dir
            self.component_name = None
            self.logger = Logger(self)

    controller = Controller(tmp_path)
    controller.logger.log("trace outside", level="TRACE")
    controller.component_name = "secondary_allocation"
    assert controller.logger.trace_enabled
    controller.logger.log("trace inside", level="TRACE")
    controller.component_name = "result_merge"
    controller.logger.log("trace after", level="TRACE")

    with open(tmp_path / "debug.log", "r") as f:
        text = f.read()
    assert "trace outside" not in text
    assert "trace inside" in text
    assert "trace after" not in text


def test_log_start_end_decorator(stub_controller):
    from delayalloc.logger import LogStartEnd

    class Step:
        def __init__(self, controller):
            self.logger = controller.logger

        @LogStartEnd("Decorated step", level="STATUS")
        def run(self, value):
            return value * 2

    assert Step(stub_controller).run(2) == 4
    with open(
        os.path.join(stub_controller.run_dir, stub_controller.config.logging.run_file_path),
        "r",
    ) as f:
        text = f.readlines()
    assert text[0].endswith("STATUS: Start Decorated step\n")
    assert text[1].endswith("STATUS: End Decorated step\n")


def test_close(stub_controller):
    """After close the log files are released and further messages are not written."""
    controller = stub_controller
    logger = controller.logger
    logger.log("Before close", level="STATUS")
    logger.close()
    logger.log("After close", level="STATUS")

    with open(
        os.path.join(controller.run_dir, controller.config.logging.run_file_path), "r"
    ) as f:
        text = f.read()
    assert "Before close" in text
    assert "After close" not in text
