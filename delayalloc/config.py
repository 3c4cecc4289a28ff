"""Config implementation and schema."""
# pylint: disable=too-many-instance-attributes

import datetime
import pathlib
from abc import ABC
from typing import List, Optional, Tuple, Union

import toml
from pydantic import Field, field_validator
from pydantic.dataclasses import dataclass
from typing_extensions import Literal


class ConfigItem(ABC):
    """Base class to add partial dict-like interface to delayalloc configuration.

    Allow use of .items() ["X"] and .get("X") .to_dict() from configuration.

    Not to be constructed directly. To be used a mixin for dataclasses
    representing config schema.
    Do not use "get" "to_dict", or "items" for key names.
    """

    def __getitem__(self, key):
        """Get item for config. D[key] -> D[key] if key in D, else raise KeyError."""
        return getattr(self, key)

    def items(self):
        """The sub-config objects in config."""
        return self.__dict__.items()

    def get(self, key, default=None):
        """Return the value for key if key is in the dictionary, else default."""
        return self.__dict__.get(key, default)


@dataclass(frozen=True)
class ScenarioConfig(ConfigItem):
    """Scenario related parameters.

    Properties:
        name: scenario name string
        build_network: relative path to the build network links, either a .csv
            table or a spatial file readable by geopandas (.shp, .gpkg, .geojson)
        no_build_network: relative path to the no-build network links
        output_dir: relative path to the directory for all run outputs
        cost_file: optional, relative path to a project cost table with
            columns proj_id, cost
        answers_file: optional, relative path to a table of expected results
            with columns proj_id, total_benefits, used by verify
        verify: optional, default False, if True the run is checked against
            answers_file after the results are merged
        verify_rel_tol: relative tolerance used in comparison with answers_file
    """

    name: str
    build_network: pathlib.Path
    no_build_network: pathlib.Path
    output_dir: pathlib.Path = Field(default=pathlib.Path("outputs"))
    cost_file: Optional[pathlib.Path] = Field(default=None)
    answers_file: Optional[pathlib.Path] = Field(default=None)
    verify: Optional[bool] = Field(default=False)
    verify_rel_tol: float = Field(default=1e-6, gt=0)

    def __post_init__(self):
        if self.verify and self.answers_file is None:
            raise ValueError(
                "ScenarioConfig: verify requires an answers_file with the expected\
            project total_benefits."
            )


@dataclass(frozen=True)
class FieldsConfig(ConfigItem):
    """Mapping of network table field names used in the delay allocation.

    The volume, capacity and delay fields must be found in both the build and
    no-build networks; the remainder only in the build network.

    Properties:
        ab_vol: AB direction assigned volume
        ba_vol: BA direction assigned volume
        ab_cap: AB direction capacity
        ba_cap: BA direction capacity
        ab_delay: AB direction total delay
        ba_delay: BA direction total delay
        fclass_field: functional class field used to identify centroid connectors
        cc_class: value of fclass_field for centroid connectors
        projid_field: project ID field, null for links not in a project
        id_field: link ID field, shared by both networks
        length_field: link length field, also the unit of network distances
        dir_field: link direction field, 0 for two-way links
        a_node_field: link start node ID field
        b_node_field: link end node ID field
    """

    ab_vol: str
    ba_vol: str
    ab_cap: str
    ba_cap: str
    ab_delay: str
    ba_delay: str
    fclass_field: str
    cc_class: Union[int, float, str]
    projid_field: str
    id_field: str = Field(default="ID")
    length_field: str = Field(default="Length")
    dir_field: str = Field(default="Dir")
    a_node_field: str = Field(default="From_ID")
    b_node_field: str = Field(default="To_ID")

    @property
    def scenario_fields(self) -> Tuple[str, ...]:
        """The per-scenario volume, capacity and delay fields."""
        return (
            self.ab_vol,
            self.ba_vol,
            self.ab_cap,
            self.ba_cap,
            self.ab_delay,
            self.ba_delay,
        )

    def __post_init__(self):
        if len(set(self.scenario_fields)) != len(self.scenario_fields):
            raise ValueError(
                f"FieldsConfig: volume, capacity and delay fields must be distinct,\
            found {self.scenario_fields}"
            )


ComponentNames = Literal[
    "scenario_diff",
    "benefit_classification",
    "secondary_allocation",
    "primary_aggregation",
    "result_merge",
    "output_map",
]

# components which must run before each component
COMPONENT_REQUIRES = {
    "scenario_diff": (),
    "benefit_classification": ("scenario_diff",),
    "secondary_allocation": ("benefit_classification",),
    "primary_aggregation": ("benefit_classification",),
    "result_merge": ("secondary_allocation", "primary_aggregation"),
    "output_map": ("benefit_classification",),
}


@dataclass(frozen=True)
class RunConfig(ConfigItem):
    """Model run parameters.

    Note that the components will be executed in the order listed.

    Properties:
        components: list of components to run, in order
    """

    components: Tuple[ComponentNames, ...] = Field(
        default=(
            "scenario_diff",
            "benefit_classification",
            "secondary_allocation",
            "primary_aggregation",
            "result_merge",
            "output_map",
        )
    )

    @field_validator("components")
    @classmethod
    def required_components_first(cls, value):
        """Validate each component is listed after the components it depends upon."""
        for i, name in enumerate(value):
            for required in COMPONENT_REQUIRES[name]:
                assert (
                    required in value[:i]
                ), f"'{name}' requires '{required}' to be listed before it in components"
        return value


@dataclass(frozen=True)
class ScenarioDiffConfig(ConfigItem):
    """Scenario differencing parameters.

    Properties:
        pct_epsilon: offset added to the no-build value in percent difference
            denominators
        pct_cap: percent differences are clipped to +/- this value
    """

    pct_epsilon: float = Field(default=1e-4, gt=0)
    pct_cap: float = Field(default=999.0, gt=0)


@dataclass(frozen=True)
class ClassificationConfig(ConfigItem):
    """Benefit classification parameters.

    Properties:
        zero_snap: benefits within +/- this value of zero are set to 0
    """

    zero_snap: float = Field(default=1e-4, ge=0)


BufferQueryType = Literal["network", "geometry"]


@dataclass(frozen=True)
class AllocationConfig(ConfigItem):
    """Secondary benefit allocation parameters.

    Properties:
        max_buffer: upper limit on project search radius, the radius is the
            smaller of the project length and max_buffer
        decay_exponent: exponent of the distance decay weight
        min_distance: floor on the distance from a donor link to a project link
        buffer_query: "network" to select donor links by network distance from
            the project link nodes, "geometry" to select by buffering the link
            geometry (requires a spatial build network)
        distance_matrix_file: optional, relative path to an OMX file with the
            all-pairs node distance matrix; read if it exists, otherwise
            written after the matrix is calculated
        distance_matrix_name: name of the matrix in distance_matrix_file
    """

    max_buffer: float = Field(default=10.0, gt=0)
    decay_exponent: float = Field(default=4.0, gt=0)
    min_distance: float = Field(default=0.5, ge=0)
    buffer_query: BufferQueryType = Field(default="network")
    distance_matrix_file: Optional[pathlib.Path] = Field(default=None)
    distance_matrix_name: str = Field(default="distance")


@dataclass(frozen=True)
class OutputConfig(ConfigItem):
    """Output file names, relative to scenario.output_dir.

    Properties:
        benefits_file: project level benefits table
        link_file: link level detail written with the build network geometry,
            format from the file extension
        link_table_file: link level detail written when the build network has
            no geometry
        allocation_file: secondary allocation detail table
        write_allocation_detail: if True write allocation_file
    """

    benefits_file: str = Field(default="project_benefits.csv")
    link_file: str = Field(default="link_benefits.gpkg")
    link_table_file: str = Field(default="link_benefits.csv")
    allocation_file: str = Field(default="secondary_allocation.csv")
    write_allocation_detail: bool = Field(default=False)

    @field_validator("benefits_file", "link_table_file", "allocation_file")
    @classmethod
    def csv_extension(cls, value):
        """Validate tabular outputs are .csv files."""
        assert value.lower().endswith(".csv"), f"-> must be a .csv file, found {value}"
        return value


LogLevel = Literal[
    "TRACE", "DEBUG", "DETAIL", "INFO", "STATUS", "WARN", "ERROR", "FATAL"
]


@dataclass(frozen=True)
class LoggingConfig(ConfigItem):
    """Logging parameters.

    Properties:
        display_level: filter level for messages to show in console, default
            is STATUS
        run_file_path: relative path to high-level log file for the model run,
            default is delayalloc_run_[%Y%m%d_%H%M].log
        run_file_level: filter level for messages recorded in the run log,
            default is INFO
        log_file_path: relative path to general log file with more detail
            than the run_file, default is delayalloc_debug_[%Y%m%d_%H%M].log
        log_file_level: optional, filter level for messages recorded in the
            standard log, default is DEBUG
        log_on_error_file_path: relative path to use for fallback log message cache
            on error, default is delayalloc_error_[%Y%m%d_%H%M].log
        notify_slack: if true notify_slack messages will be sent, default is False
        slack_webhook_file: optional, path to a text file with the slack webhook url
        component_level: tuple of tuples of component name, log level.
            Used to override log levels (log_file_level) for debugging and recording
            more detail in the log_file_path.
            Example: [ ["secondary_allocation", "TRACE"] ] to record all messages
            during the secondary_allocation component run.
    """

    display_level: Optional[LogLevel] = Field(default="STATUS")
    run_file_path: Optional[str] = Field(
        default="delayalloc_run_{}.log".format(
            datetime.datetime.now().strftime("%Y%m%d_%H%M")
        )
    )
    run_file_level: Optional[LogLevel] = Field(default="INFO")
    log_file_path: Optional[str] = Field(
        default="delayalloc_debug_{}.log".format(
            datetime.datetime.now().strftime("%Y%m%d_%H%M")
        )
    )
    log_file_level: Optional[LogLevel] = Field(default="DEBUG")
    log_on_error_file_path: Optional[str] = Field(
        default="delayalloc_error_{}.log".format(
            datetime.datetime.now().strftime("%Y%m%d_%H%M")
        )
    )

    notify_slack: Optional[bool] = Field(default=False)
    slack_webhook_file: Optional[str] = Field(default=None)
    component_level: Optional[Tuple[Tuple[ComponentNames, LogLevel], ...]] = Field(
        default=None
    )


@dataclass(frozen=True)
class Configuration(ConfigItem):
    """Configuration: root of the delay allocation configuration."""

    scenario: ScenarioConfig
    fields: FieldsConfig
    run: Optional[RunConfig] = Field(default_factory=RunConfig)
    scenario_diff: Optional[ScenarioDiffConfig] = Field(
        default_factory=ScenarioDiffConfig
    )
    classification: Optional[ClassificationConfig] = Field(
        default_factory=ClassificationConfig
    )
    allocation: Optional[AllocationConfig] = Field(default_factory=AllocationConfig)
    output: Optional[OutputConfig] = Field(default_factory=OutputConfig)
    logging: Optional[LoggingConfig] = Field(default_factory=LoggingConfig)

    @classmethod
    def load_toml(
        cls,
        toml_path: Union[List[Union[str, pathlib.Path]], str, pathlib.Path],
    ) -> "Configuration":
        """Load configuration from .toml files(s).

        Normally the config is split into a scenario_config.toml file with the
        input paths and a model_config.toml with the field names and parameters.

        Args:
            toml_path: a valid system path string or Path object to a TOML format config file or
                list of paths of path objects to a set of TOML files.

        Returns:
            A Configuration object
        """
        if not isinstance(toml_path, (list, tuple)):
            toml_path = [toml_path]
        toml_path = list(map(pathlib.Path, toml_path))

        data = _load_toml(toml_path[0])
        for path_item in toml_path[1:]:
            _merge_dicts(data, _load_toml(path_item))
        return cls(**data)


def _load_toml(path: str) -> dict:
    """Load config from toml file at path."""
    with open(path, "r", encoding="utf-8") as toml_file:
        data = toml.load(toml_file)
    return data


def _merge_dicts(right, left, path=None):
    """Merges the contents of nested dict left into nested dict right.

    Raises errors in case of namespace conflicts.

    Args:
        right: dict, modified in place
        left: dict to be merged into right
        path: default None, sequence of keys to be reported in case of
            error in merging nested dictionaries
    """
    if path is None:
        path = []
    for key in left:
        if key in right:
            if isinstance(right[key], dict) and isinstance(left[key], dict):
                _merge_dicts(right[key], left[key], path + [str(key)])
            else:
                path = ".".join(path + [str(key)])
                raise Exception(f"duplicate keys in source .toml files: {path}")
        else:
            right[key] = left[key]
