"""Root component ABC, the run context passed between components and run errors."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

import pandas as pd

if TYPE_CHECKING:
    import geopandas as gpd

    from delayalloc.controller import RunController


class FileFormatError(Exception):
    """Exception raised when a file is not in the expected format."""

    def __init__(self, f, *args):
        """Exception for invalid file formats."""
        super().__init__(f, *args)
        self.f = f
        self.reason = args[0] if args else None

    def __str__(self):
        """String representation for FileFormatError."""
        if self.reason:
            return f"The {self.f} is not a valid format: {self.reason}."
        return f"The {self.f} is not a valid format."


class ConfigurationError(Exception):
    """Exception raised when a required argument or table field is missing."""


class EmptyResultError(Exception):
    """Exception raised when a selection required for the run returns no rows."""


class RunCancelled(Exception):
    """Exception raised when the run is cancelled by the user."""


class VerificationError(Exception):
    """Exception raised when run results do not match the expected answers."""


@dataclass(frozen=True)
class RunContext:
    """Outputs of each component, passed from one component to the next.

    A component returns a new RunContext (dataclasses.replace) with its own
    output added; the DataFrames from previous components are not modified.

    Properties:
        links: link records, differenced by ScenarioDiff and classified by
            BenefitClassification
        geometry: build network link geometry (id, geometry) or None if the
            build network is a table without geometry
        allocation: secondary allocation rows, one per project, project link
            and donor link
        secondary: secondary benefits per project
        primary: primary benefits and metrics per project
        results: merged project level results
    """

    links: Optional[pd.DataFrame] = None
    geometry: Optional["gpd.GeoDataFrame"] = None
    allocation: Optional[pd.DataFrame] = None
    secondary: Optional[pd.DataFrame] = None
    primary: Optional[pd.DataFrame] = None
    results: Optional[pd.DataFrame] = None

    def require(self, name: str):
        """Return the named output, raise if the component creating it has not run."""
        value = getattr(self, name)
        if value is None:
            raise ConfigurationError(f"RunContext.{name} not available, check run.components")
        return value


class Component(ABC):
    """Template for Component class with several built-in methods.

    A component is a stage of the delay allocation which can be run given the
    outputs of the prior stages in the RunContext and the configuration.

    Abstract Methods – Each component class must have the following methods:
        __init___: constructor, which associates the RunController with the instantiated object
        run: run the component on the RunContext, return a new RunContext
        validate_inputs: validate the inputs to the component

    Template Class methods - component classes inherit:
        get_abs_path: convenience method to get absolute path of the run directory
        verify: optional check of the component results

    Template Class Properties - component classes inherit:
        controller: RunController object
        config: Config object
        logger: logger object
        cancel_token: the run CancelToken

    Example:
    ::
        class MyComponent(Component):

        def __init__(self, controller):
            super().__init__(controller)
            self._parameter = None

        def run(self, context):
            links = self._step1(context.links)
            return dataclasses.replace(context, links=links)
    """

    def __init__(self, controller: RunController):
        """Model component template/abstract base class.

        Args:
            controller (RunController): Reference to the run controller object.
        """
        self._controller = controller

    @property
    def controller(self):
        """Parent controller."""
        return self._controller

    @property
    def config(self):
        """Root Configuration."""
        return self.controller.config

    def get_abs_path(self, path: Union[Path, str]) -> str:
        """Convenince method to get absolute path from run directory."""
        if not os.path.isabs(path):
            return self.controller.get_abs_path(path).__str__()
        return str(path)

    def get_output_path(self, file_name: str) -> str:
        """Absolute path of file_name in the scenario output directory."""
        return os.path.join(
            self.get_abs_path(self.config.scenario.output_dir), file_name
        )

    @property
    def logger(self):
        """Reference to logger."""
        return self.controller.logger

    @property
    def cancel_token(self):
        """Reference to the run cancellation token."""
        return self.controller.cancel_token

    @abstractmethod
    def validate_inputs(self):
        """Validate inputs are correct at model initiation, raise on error."""

    @abstractmethod
    def run(self, context: RunContext) -> RunContext:
        """Run model component."""

    def verify(self, context: RunContext):
        """Verify component outputs / results."""


class Subcomponent(Component):
    """Template for sub-component class.

    A sub-component is a more loosly defined component that allows for any
    inputs into the run() method. It is used to break-up larger processes into
    smaller chunks which are easier to test, understand and debug.
    """

    def __init__(self, controller: RunController, component: Component):
        """Constructor for model sub-component abstract base class.

        Args:
            controller (RunController): Reference to the run controller object.
            component (Component): Reference to the parent component object.
        """
        super().__init__(controller)
        self.component = component

    def validate_inputs(self):
        """Inputs are validated by the parent component."""

    @abstractmethod
    def run(self, *args, **kwargs):
        """Run sub-component, allowing for multiple inputs."""
