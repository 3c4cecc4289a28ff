"""Logging module.

Note the general definition of logging levels as used in delayalloc:

TRACE: highly detailed level information which would rarely be of interest
    except for detailed debugging by a developer, e.g. every donor link
    weight in the secondary allocation
DEBUG: diagnostic information which would generally be useful to a developer
    debugging the code; this may also be useful to an analyst in some cases.
DETAIL: more detail than would normally be of interest, but might be useful
    to an analyst checking the input networks or understanding results,
    e.g. per project progress and dropped projects
INFO: detail which would normally be worth recording about the run
STATUS: top-level, run is progressing type messages. There should be
    relatively few of these, generally one per component.
WARN: warning messages where there is a possibility of a problem
ERROR: problem causing operation to halt which is normal
    (or not unexpected) in scope, e.g. file does not exist
    Includes general Python exceptions.
FATAL: severe problem requiring operation to stop immediately.
"""

from __future__ import annotations

import functools
import os
from abc import abstractmethod
from contextlib import contextmanager as _context
from datetime import datetime
from pprint import pformat
from typing import TYPE_CHECKING, Union

import requests
from typing_extensions import Literal, get_args

if TYPE_CHECKING:
    from delayalloc.controller import RunController

LogLevel = Literal[
    "TRACE", "DEBUG", "DETAIL", "INFO", "STATUS", "WARN", "ERROR", "FATAL"
]
LEVELS_STR_TO_INT = dict((k, i) for i, k in enumerate(get_args(LogLevel)))
LEVELS_INT_TO_STR = dict((i, k) for i, k in enumerate(get_args(LogLevel)))

# pylint: disable=too-many-instance-attributes


class Logger:
    """Logging of message text for display and text files, as well as notify to slack.

    The log message levels can be one of:
    TRACE, DEBUG, DETAIL, INFO, STATUS, WARN, ERROR, FATAL
    Which will filter all messages of that severity and higher.
    See module note on use of descriptive level names.

    logger.log("a message")
    with logger.log_start_end("Running a set of steps"):
        logger.log("Message with timestamp")
        logger.log("A debug message", level="DEBUG")
        if logger.debug_enabled:
            # only generate this report if logging DEBUG
            logger.log("A debug report that takes time to produce", level="DEBUG")
        logger.notify_slack("A slack message")

    Methods can also be decorated with LogStartEnd (see class for more).

    Log files are open from construction until close() is called at the end
    of the run.

    Internal properties:
        _log_cache: the LogCache object
        _log_formatters: list of objects that format text and record, either
            to file, display (print to screen) or cache for log on error
        _slack_notifier: SlackNotifier object for sending messages to slack
    """

    def __init__(self, controller: RunController):
        """Constructor for Logger object.

        Args:
            controller (RunController): Associated RunController instance.
        """
        self.controller = controller
        log_config = controller.config.logging
        component_level = dict(
            (c, LEVELS_STR_TO_INT[l]) for c, l in log_config.component_level or []
        )
        display_logger = LogDisplay(LEVELS_STR_TO_INT[log_config.display_level])
        run_log_formatter = LogFile(
            LEVELS_STR_TO_INT[log_config.run_file_level],
            os.path.join(controller.run_dir, log_config.run_file_path),
        )
        standard_log_formatter = LogFileLevelOverride(
            LEVELS_STR_TO_INT[log_config.log_file_level],
            os.path.join(controller.run_dir, log_config.log_file_path),
            component_level,
            controller,
        )
        self._log_cache = LogCache(
            os.path.join(controller.run_dir, log_config.log_on_error_file_path)
        )
        self._log_formatters = [
            display_logger,
            run_log_formatter,
            standard_log_formatter,
            self._log_cache,
        ]

        self._slack_notifier = SlackNotifier(self)

        for log_formatter in self._log_formatters:
            if hasattr(log_formatter, "open"):
                log_formatter.open()

    def close(self):
        """Close any open log files, messages are no longer written to file."""
        for log_formatter in self._log_formatters:
            if hasattr(log_formatter, "close"):
                log_formatter.close()

    def __del__(self):
        """Close any open log files."""
        if hasattr(self, "_log_formatters"):
            self.close()

    def notify_slack(self, text: str):
        """Send message to slack if enabled by config.

        Args:
            text (str): text to send to slack
        """
        if self.controller.config.logging.notify_slack:
            self._slack_notifier.post_message(text)

    def log(self, text: str, level: LogLevel = "INFO", indent: bool = True):
        """Log text to file and display depending upon log level and config.

        Args:
            text (str): text to log
            level (str): logging level
            indent (bool): if true indent text based on the number of open contexts
        """
        timestamp = datetime.now().strftime("%d-%b-%Y (%H:%M:%S) ")
        for log_formatter in self._log_formatters:
            log_formatter.log(text, LEVELS_STR_TO_INT[level], indent, timestamp)

    def log_progress(
        self, text: str, current: int, total: int, level: LogLevel = "DETAIL"
    ):
        """Log position in a long running loop, e.g. "Project P1 (3 of 12)".

        Args:
            text (str): description of the current item
            current (int): 1-based position of the current item
            total (int): total number of items in the loop
            level (str): logging level
        """
        self.log(f"{text} ({current} of {total})", level)

    def _log_start(self, text: str, level: LogLevel = "INFO"):
        """Log message with timestamp and 'Start'.

        Args:
            text (str): message text
            level (str): logging level
        """
        self.log(f"Start {text}", level, indent=True)
        for log_formatter in self._log_formatters:
            log_formatter.increase_indent(LEVELS_STR_TO_INT[level])

    def _log_end(self, text: str, level: LogLevel = "INFO"):
        """Log message with timestamp and 'End'.

        Args:
            text (str): message text
            level (str): logging level
        """
        for log_formatter in self._log_formatters:
            log_formatter.decrease_indent(LEVELS_STR_TO_INT[level])
        self.log(f"End {text}", level, indent=True)

    @_context
    def log_start_end(self, text: str, level: LogLevel = "STATUS"):
        """Use with 'with' statement to log the start and end time with message.

        The end message is only recorded if the block completes; on error the
        indentation is restored and the exception propagates.

        Args:
            text (str): message text
            level (str): logging level
        """
        self._log_start(text, level)
        try:
            yield
        except BaseException:
            for log_formatter in self._log_formatters:
                log_formatter.decrease_indent(LEVELS_STR_TO_INT[level])
            raise
        self._log_end(text, level)

    def log_dict(self, mapping: dict, level: LogLevel = "DEBUG"):
        """Format dictionary to string and log as text."""
        self.log(pformat(mapping, indent=1, width=120), level)

    def clear_msg_cache(self):
        """Clear all log messages from cache."""
        self._log_cache.clear()

    def write_error_log(self):
        """Write all cached messages, at all levels, to the log on error file."""
        self._log_cache.write_cache()

    @property
    def debug_enabled(self) -> bool:
        """Returns True if DEBUG is currently filtered for display or print to file.

        Can be used to enable / disable debug logging which may have a performance
        impact.
        """
        debug = LEVELS_STR_TO_INT["DEBUG"]
        for log_formatter in self._log_formatters:
            if log_formatter is not self._log_cache and log_formatter.level <= debug:
                return True
        return False

    @property
    def trace_enabled(self) -> bool:
        """Returns True if TRACE is currently filtered for display or print to file.

        Can be used to enable / disable trace logging which may have a performance
        impact.
        """
        trace = LEVELS_STR_TO_INT["TRACE"]
        for log_formatter in self._log_formatters:
            if log_formatter is not self._log_cache and log_formatter.level <= trace:
                return True
        return False


class LogFormatter:
    """Base class for recording text to log.

    Properties:
        indent: current indentation level for the LogFormatter
        level: log filter level (as an int)
    """

    def __init__(self, level: int):
        """Constructor for LogFormatter.

        Args:
            level (int): log filter level (as an int)
        """
        self._level = level
        self.indent = 0

    @property
    def level(self):
        """The current filter level for the LogFormatter."""
        return self._level

    def increase_indent(self, level: int):
        """Increase current indent if the log level is filtered in."""
        if level >= self.level:
            self.indent += 1

    def decrease_indent(self, level: int):
        """Decrease current indent if the log level is filtered in."""
        if level >= self.level:
            self.indent -= 1

    @abstractmethod
    def log(
        self,
        text: str,
        level: int,
        indent: bool,
        timestamp: Union[str, None],
    ):
        """Format and log message text.

        Args:
            text (str): text to log
            level (int): logging level
            indent (bool): if true indent text based on the number of open contexts
            timestamp (str): formatted datetime as a string or None
        """

    def _format_text(
        self,
        text: str,
        level: int,
        indent: bool,
        timestamp: Union[str, None],
    ):
        """Format text for logging.

        Args:
            text (str): text to format
            level (int): logging level
            indent (bool): if true indent text based on the number of open contexts and
                timestamp width
            timestamp (str): formatted datetime as a string or None for timestamp
        """
        if timestamp is None:
            timestamp = " " * 24 if indent else ""
        if indent:
            indent = "  " * max(self.indent, 0)
        else:
            indent = ""
        level_str = "{0:>6}".format(LEVELS_INT_TO_STR[level])
        return f"{timestamp}{level_str}: {indent}{text}"


class LogFile(LogFormatter):
    """Format and write log text to file.

    Properties:
        - level: the log level as an int
        - file_path: the absolute file path to write to
    """

    def __init__(self, level: int, file_path: str):
        """Constructor for LogFile object.

        Args:
            level (int): the log level as an int.
            file_path (str): the absolute file path to write to.
        """
        super().__init__(level)
        self.file_path = file_path
        self.log_file = None

    def open(self):
        """Open the log file for writing."""
        self.log_file = open(self.file_path, "w", encoding="utf8")

    def log(self, text: str, level: int, indent: bool, timestamp: Union[str, None]):
        """Log text to file depending upon log level.

        Note that log will not write to file until opened.

        Args:
            text (str): text to log
            level (int): logging level
            indent (bool): if true indent text based on the number of open contexts
            timestamp (str): formatted datetime as a string or None for timestamp
        """
        if level >= self.level and self.log_file is not None:
            text = self._format_text(text, level, indent, timestamp)
            self.log_file.write(f"{text}\n")
            self.log_file.flush()

    def close(self):
        """Close the open log file."""
        if self.log_file is not None:
            self.log_file.close()
        self.log_file = None


class LogFileLevelOverride(LogFile):
    """Format and write log text to file, with the level set per component.

    Properties:
        - level: the log level as an int
        - file_path: the absolute file path to write to
        - component_level: mapping of component name to log level (int) used
            while that component is running
        - controller: the RunController, used for the current component name
    """

    def __init__(self, level, file_path, component_level, controller):
        """Constructor for LogFileLevelOverride object.

        Args:
            level (int): default log level as an int
            file_path (str): the absolute file path to write to
            component_level (dict): component name to log level as an int
            controller (RunController): the run controller
        """
        super().__init__(level, file_path)
        self.component_level = component_level
        self.controller = controller

    @property
    def level(self):
        """Current log level with component_level config override."""
        return self.component_level.get(self.controller.component_name, self._level)


class LogDisplay(LogFormatter):
    """Format and print log text to console / Notebook.

    Properties:
        - level: the log level as an int
    """

    def log(self, text: str, level: int, indent: bool, timestamp: Union[str, None]):
        """Format and display text on screen (print).

        Args:
            text (str): text to log
            level (int): logging level
            indent (bool): if true indent text based on the number of open contexts
            timestamp (str): formatted datetime as a string or None
        """
        if level >= self.level:
            print(self._format_text(text, level, indent, timestamp))


class LogCache(LogFormatter):
    """Caches all messages for later recording in on error logfile.

    Properties:
        - file_path: the absolute file path to write to
    """

    def __init__(self, file_path: str):
        """Constructor for LogCache object.

        Args:
            file_path (str): the absolute file path to write to.
        """
        super().__init__(level=0)
        self.file_path = file_path
        self._msg_cache = []

    def open(self):
        """Initialize log file (remove)."""
        if os.path.exists(self.file_path):
            os.remove(self.file_path)

    def log(self, text: str, level: int, indent: bool, timestamp: Union[str, None]):
        """Format and store text for later recording.

        Args:
            text (str): text to log
            level (int): logging level
            indent (bool): if true indent text based on the number of open contexts
            timestamp (str): formatted datetime as a string or None
        """
        self._msg_cache.append(
            (level, self._format_text(text, level, indent, timestamp))
        )

    def write_cache(self):
        """Write all cached messages."""
        with open(self.file_path, "w", encoding="utf8") as file:
            for level, text in self._msg_cache:
                file.write(f"{LEVELS_INT_TO_STR[level]:6} {text}\n")
        self.clear()

    def clear(self):
        """Clear message cache."""
        self._msg_cache = []


# pylint: disable=too-few-public-methods


class LogStartEnd:
    """Log the start and end time with optional message.

    Used as a Component method decorator. If msg is not provided a default
    message is generated with the object class and method name.

    Example::
        @LogStartEnd("Secondary benefit allocation", level="STATUS")
        def run(self, context):
            pass

    Properties:
        text (str): message text to use in the start and end record.
        level (str): logging level as a string.
    """

    def __init__(self, text: str = None, level: str = "INFO"):
        """Constructor for LogStartEnd object.

        Args:
            text (str, optional): message text to use in the start and end record.
                Defaults to None.
            level (str, optional): logging level as a string. Defaults to "INFO".
        """
        self.text = text
        self.level = level

    def __call__(self, func):
        """Wrap func with the logger start and end context.

        Args:
            func: Component method to wrap

        Returns:
            wrapped method
        """

        @functools.wraps(func)
        def wrapper(obj, *args, **kwargs):
            text = self.text or obj.__class__.__name__ + " " + func.__name__
            with obj.logger.log_start_end(text, self.level):
                value = func(obj, *args, **kwargs)
            return value

        return wrapper


class SlackNotifier:
    """Notify slack of run status.

    The slack webhook url can be input directly, or is read from the text file
    named in config.logging.slack_webhook_file.

    Properties:
        - logger (Logger): object for logging of trace messages
        - slack_webhook_url (str): optional, url to use for sending the message to slack
    """

    def __init__(self, logger: Logger, slack_webhook_url: str = None):
        """Constructor for SlackNotifier object.

        Args:
            logger (Logger): logger instance.
            slack_webhook_url (str, optional): Defaults to None, which is replaced by
                the contents of config.logging.slack_webhook_file if it exists.
        """
        self.logger = logger
        log_config = logger.controller.config.logging
        if not log_config.notify_slack:
            self._slack_webhook_url = None
            return
        if slack_webhook_url is None:
            url_file = log_config.slack_webhook_file
            if url_file and os.path.isfile(url_file):
                with open(url_file, "r", encoding="utf8") as file:
                    self._slack_webhook_url = file.read().strip()
            else:
                self._slack_webhook_url = None
        else:
            self._slack_webhook_url = slack_webhook_url
        self.logger.log(
            f"SlackNotifier using slack webhook url {self._slack_webhook_url}",
            level="TRACE",
        )

    def post_message(self, text):
        """Posts text to the slack channel via the webhook if slack_webhook_url is found.

        Args:
           text: text message to send to slack
        """
        if self._slack_webhook_url is None:
            return
        headers = {"Content-type": "application/json"}
        data = {"text": text}
        self.logger.log(f"Sending message to slack: {text}", level="TRACE")
        response = requests.post(
            self._slack_webhook_url, headers=headers, json=data, timeout=30
        )
        self.logger.log(f"Receiving response: {response}", level="TRACE")
