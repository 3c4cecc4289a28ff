"""Base of delayalloc module."""
from ._version import __version__
from .components.component import (
    Component,
    ConfigurationError,
    EmptyResultError,
    RunCancelled,
    RunContext,
    VerificationError,
)
from .components.network.distance import DistanceMatrix
from .config import Configuration, FieldsConfig, RunConfig, ScenarioConfig
from .controller import RunController
from .logger import Logger, LogStartEnd
from .tools import CancelToken

__all__ = [
    # component
    "Component",
    "RunContext",
    # errors
    "ConfigurationError",
    "EmptyResultError",
    "RunCancelled",
    "VerificationError",
    # config
    "Configuration",
    "FieldsConfig",
    "RunConfig",
    "ScenarioConfig",
    # controller
    "RunController",
    "CancelToken",
    # network
    "DistanceMatrix",
    # logger
    "Logger",
    "LogStartEnd",
]
