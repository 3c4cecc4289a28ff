"""RunController - delay allocation operation controller.

Main interface to start a delayalloc run. Provide one or more configuration
files in .toml format (by convention a scenario_config.toml and a
model_config.toml)

  Typical usage example:
  from delayalloc.controller import RunController
  controller = RunController(
    ["scenario_config.toml", "model_config.toml"])
  controller.run()

  Or from the command-line:
  `delayalloc scenario_config.toml model_config.toml -r <run directory>`

"""
import os
from collections import deque
from pathlib import Path
from typing import Collection, List, Optional, Tuple, Union

from delayalloc.components.benefits.classifier import BenefitClassification
from delayalloc.components.benefits.primary import PrimaryAggregation
from delayalloc.components.benefits.results import ResultMerge
from delayalloc.components.benefits.secondary import SecondaryAllocation
from delayalloc.components.component import Component, RunContext
from delayalloc.components.network.scenario_diff import ScenarioDiff
from delayalloc.components.output_mapper import OutputMapper
from delayalloc.config import Configuration
from delayalloc.logger import Logger
from delayalloc.tools import CancelToken

# mapping from names referenced in config.run to imported classes
# NOTE: component names also listed as literal in delayalloc.config for validation
component_cls_map = {
    "scenario_diff": ScenarioDiff,
    "benefit_classification": BenefitClassification,
    "secondary_allocation": SecondaryAllocation,
    "primary_aggregation": PrimaryAggregation,
    "result_merge": ResultMerge,
    "output_map": OutputMapper,
}

# pylint: disable=too-many-instance-attributes


class RunController:
    """Main operational interface for delay allocation runs.

    Provide one or more config files in TOML (*.toml) format, and a run directory.
    If the run directory is not provided the root directory of the first config_file is used.

    Properties:
        config: root Configuration object
        logger: logger object
        run_dir: root run directory for the run, relative paths in the config
            are relative to run_dir
        component_name: name of the current running (or last started) component
        context: the RunContext returned by the last completed component
        cancel_token: CancelToken checked by the long running loops; call
            cancel() to stop the run
        completed_components: list of components which have completed, tuple of
            (name, Component object)

    Internal properties:
        _component: current running / last run Component
        _component_name: name of the current / last run component
        _queued_components: list of name, Component
    """

    def __init__(
        self,
        config_file: Union[Collection[Union[str, Path]], str, Path] = None,
        run_dir: Union[Path, str] = None,
        run_components: Optional[Collection[str]] = None,
        cancel_token: Optional[CancelToken] = None,
    ):
        """Constructor for RunController class.

        Args:
            config_file: Single or list of config file locations as strings or Path objects.
            run_dir: Run directory as a Path object or string. If not provided, defaults
                to the directory of the first config_file.
            run_components: List of component names to run. Defaults to config.run.components.
            cancel_token: optional CancelToken shared with the caller.
        """
        if isinstance(config_file, (str, Path)):
            config_file = [config_file]
        if not config_file:
            raise ValueError("at least one config_file is required")
        if run_dir is None:
            run_dir = Path(os.path.abspath(os.path.dirname(config_file[0])))

        self._run_dir = Path(run_dir)

        self.config = Configuration.load_toml(config_file)
        self._component_name = None
        self._component = None
        # Logger uses self.config.logging and self.component_name
        self.logger = Logger(self)
        self.cancel_token = cancel_token or CancelToken()
        self.completed_components: List[Tuple[str, Component]] = []
        self.context = RunContext()

        self._queued_components = deque()
        self._component_map = {
            k: v(self) for k, v in component_cls_map.items()
        }
        self._queue_components(run_components=run_components)

    def __repr__(self):
        """Legible representation."""
        _str = f"""RunController
            Run Directory: {self.run_dir}
            Component: {self.component_name}
            Completed: {[name for name, _ in self.completed_components]}
            Queued: {[name for name, _ in self._queued_components]}"""
        return _str

    @property
    def run_dir(self) -> Path:
        """The root run directory of the run."""
        return self._run_dir

    @property
    def component_name(self) -> str:
        """Name of current component of run."""
        return self._component_name

    def component(self) -> Component:
        """Current component of run."""
        return self._component

    def get_component(self, name: str) -> Component:
        """Component object by name, e.g. to replace its inputs before run."""
        return self._component_map[name]

    def get_abs_path(self, rel_path: Union[Path, str]) -> Path:
        """Get the absolute path from the root run directory given a relative path."""
        if not isinstance(rel_path, Path):
            rel_path = Path(rel_path)
        return Path(os.path.join(self.run_dir, rel_path))

    def cancel(self):
        """Request cancellation, the run stops at the next loop check."""
        self.cancel_token.cancel()

    def run(self) -> RunContext:
        """Main interface to run the delay allocation.

        Iterates through the self._queued_components and runs them, then runs
        verification if config.scenario.verify is set. The log files are closed
        when the run ends.

        Returns:
            the final RunContext
        """
        try:
            while self._queued_components:
                self.run_next()
            if self.config.scenario.verify:
                self._verify()
        except Exception as error:
            self.logger.log(
                f"Error during {self.component_name}: {type(error).__name__}: {error}",
                "ERROR",
            )
            self.logger.write_error_log()
            self.logger.notify_slack(f"delayalloc run failed: {error}")
            raise
        else:
            self.logger.notify_slack(
                f"delayalloc run {self.config.scenario.name} complete"
            )
        finally:
            self.logger.close()
        return self.context

    def run_next(self):
        """Run next component in the queue."""
        if not self._queued_components:
            raise ValueError("No components in queue")
        name, component = self._queued_components.popleft()
        self._component_name = name
        self._component = component
        self.context = component.run(self.context)
        self.completed_components.append((name, component))

    def _verify(self):
        with self.logger.log_start_end("Verify results"):
            for name, component in self.completed_components:
                self._component_name = name
                component.verify(self.context)

    def _queue_components(self, run_components: Collection[str] = None):
        """Add components to queue according to input Config, validating their inputs.

        Args:
            run_components: if provided, only run these components
        """
        if self._queued_components:
            return
        _components = self.config.run.components
        if run_components is not None:
            unknown = set(run_components) - set(component_cls_map)
            if unknown:
                raise ValueError(f"unknown components {sorted(unknown)}")
            _components = [c for c in _components if c in run_components]
        for _c_name in _components:
            _component = self._component_map[_c_name]
            _component.validate_inputs()
            self._queued_components.append((_c_name, _component))
