"""Allocation of link secondary benefits to the projects around them.

Secondary benefit is delay change caused by demand moving to or from a link
because of projects elsewhere. Each project claims a share of the secondary
benefit of the "donor" links within its search radius:

1. For each project, the search radius (buffer) is the smaller of the project
   length and config.allocation.max_buffer.
2. For each project link, the donor links within buffer of the link (other
   than the links of the same project) are found, and for each donor the
   distance weight is calculated from the network distance between the donor
   and the project link:

       dist2link = mean over the donor end nodes of the distance to the nearer
                   project link end node (at least min_distance)
       dist_weight = (1 - dist2link / buffer) ^ decay_exponent, 0 beyond buffer

3. Each donor link's secondary benefit is split among all the project links
   which found it, in proportion to the product of the share of the absolute
   VMT change and the share of the distance weight.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Hashable, List, NamedTuple, Optional, Sequence

import numpy as np
import pandas as pd

from delayalloc.components.component import (
    Component,
    ConfigurationError,
    EmptyResultError,
    RunContext,
)
from delayalloc.components.network.buffer_query import (
    GeometryBufferQuery,
    LinkBufferQuery,
    NetworkBufferQuery,
)
from delayalloc.components.network.distance import DistanceMatrix, DistanceMatrixBuilder
from delayalloc.config import AllocationConfig
from delayalloc.logger import LogStartEnd, Logger
from delayalloc.tools import CancelToken, safe_divide

if TYPE_CHECKING:
    from delayalloc.controller import RunController


class AllocationRow(NamedTuple):
    """One project link and donor link pair found in the allocation search."""

    buffer_link_id: Hashable
    secondary_benefit: float
    proj_id: str
    proj_link_id: Hashable
    vmt_change: float
    buffer: float
    dist2link: float
    dist_weight: float


ALLOCATION_COLUMNS = list(AllocationRow._fields) + [
    "pct_vmt",
    "pct_dist_weight",
    "combined",
    "pct",
    "final",
]


def project_lengths(links: pd.DataFrame) -> pd.Series:
    """Total length of each project.

    Links with dir != 0 are one of a pair of one-way links and count half
    their length.
    """
    project_links = links[links["project_id"].notna()]
    length = np.where(
        project_links["dir"] != 0, 0.5 * project_links["length"], project_links["length"]
    )
    return pd.Series(length, index=project_links.index).groupby(
        project_links["project_id"]
    ).sum()


def allocation_projects(links: pd.DataFrame) -> List[str]:
    """Project IDs with a net capacity change, sorted.

    Raises:
        EmptyResultError: if there are no such projects
    """
    net_cap = links[links["project_id"].notna()].groupby("project_id")["tot_cap_diff"].sum()
    projects = sorted(net_cap.index[net_cap != 0])
    if not projects:
        raise EmptyResultError(
            "no projects with a net capacity change found in the build network"
        )
    return projects


def dist_to_link(
    distances: DistanceMatrix,
    donor_nodes: Sequence[Hashable],
    link_nodes: Sequence[Hashable],
    min_distance: float = 0.5,
) -> float:
    """Mean distance from the donor end nodes to the nearer end node of the link.

    Args:
        distances: node to node distances
        donor_nodes: end nodes of the donor link
        link_nodes: end nodes of the project link
        min_distance: floor on the result
    """
    nearest = distances.distances(donor_nodes, link_nodes).min(axis=1)
    return max(float(nearest.mean()), min_distance)


def distance_weight(dist2link: float, buffer: float, exponent: float = 4.0) -> float:
    """Distance decay weight, 1 at distance 0 decreasing to 0 at the buffer."""
    if buffer <= 0 or dist2link >= buffer:
        return 0.0
    return (1.0 - dist2link / buffer) ** exponent


def collect_allocation_rows(
    links: pd.DataFrame,
    projects: Sequence[str],
    distances: DistanceMatrix,
    buffer_query: LinkBufferQuery,
    settings: Optional[AllocationConfig] = None,
    cancel_token: Optional[CancelToken] = None,
    logger: Optional[Logger] = None,
) -> pd.DataFrame:
    """Find the donor links of each project link and their distance weights.

    Args:
        links: classified link records
        projects: IDs of the projects to allocate to
        distances: node to node network distances
        buffer_query: selection of links within the buffer of a link
        settings: allocation parameters, defaults to AllocationConfig()
        cancel_token: checked for each project and each project link
        logger: optional, for progress messages

    Returns:
        DataFrame with one row (AllocationRow) per project, project link and donor link

    Raises:
        EmptyResultError: if no links are found for a project
        RunCancelled: if cancel_token is cancelled
    """
    settings = settings or AllocationConfig()
    cancel_token = cancel_token or CancelToken()
    lengths = project_lengths(links)
    by_id = links.set_index("id", drop=False)
    secondary = by_id["ab_sec_ben"] + by_id["ba_sec_ben"]

    rows = []
    for num, proj_id in enumerate(projects, start=1):
        cancel_token.raise_if_cancelled(f"project {proj_id}")
        if logger is not None:
            logger.log_progress(f"Allocating secondary benefits to project {proj_id}", num, len(projects))
        project_links = links[links["project_id"] == proj_id]
        if project_links.empty:
            raise EmptyResultError(f"no links found for project {proj_id}")
        buffer = min(float(lengths[proj_id]), settings.max_buffer)
        exclude = set(project_links["id"])

        for link in project_links.itertuples(index=False):
            cancel_token.raise_if_cancelled(f"project {proj_id} link {link.id}")
            vmt_change = abs(link.ab_vol_diff + link.ba_vol_diff) * link.length
            link_nodes = (link.a_node, link.b_node)
            donor_ids = buffer_query.links_within(link.id, buffer, exclude)
            for donor_id in donor_ids:
                donor = by_id.loc[donor_id]
                dist2link = dist_to_link(
                    distances,
                    (donor["a_node"], donor["b_node"]),
                    link_nodes,
                    settings.min_distance,
                )
                weight = distance_weight(dist2link, buffer, settings.decay_exponent)
                rows.append(
                    AllocationRow(
                        buffer_link_id=donor_id,
                        secondary_benefit=float(secondary.loc[donor_id]),
                        proj_id=proj_id,
                        proj_link_id=link.id,
                        vmt_change=vmt_change,
                        buffer=buffer,
                        dist2link=dist2link,
                        dist_weight=weight,
                    )
                )
            if logger is not None and logger.trace_enabled:
                logger.log(
                    f"project {proj_id} link {link.id}: {len(donor_ids)} donor links"
                    f" within {buffer:.3f}, vmt change {vmt_change:.3f}",
                    "TRACE",
                )
    return pd.DataFrame(rows, columns=list(AllocationRow._fields))


def normalize_allocation(rows: pd.DataFrame) -> pd.DataFrame:
    """Split each donor link's secondary benefit among the project links which found it.

    Within each buffer_link_id:
        pct_vmt = vmt_change / sum(vmt_change)
        pct_dist_weight = dist_weight / sum(dist_weight)
        combined = pct_vmt * pct_dist_weight
        pct = combined / sum(combined)
        final = pct * secondary_benefit
    Zero sums give zero shares.
    """
    rows = rows.copy()
    group = rows.groupby("buffer_link_id", sort=False)
    rows["pct_vmt"] = safe_divide(
        rows["vmt_change"], group["vmt_change"].transform("sum")
    )
    rows["pct_dist_weight"] = safe_divide(
        rows["dist_weight"], group["dist_weight"].transform("sum")
    )
    rows["combined"] = rows["pct_vmt"] * rows["pct_dist_weight"]
    rows["pct"] = safe_divide(
        rows["combined"], rows.groupby("buffer_link_id", sort=False)["combined"].transform("sum")
    )
    rows["final"] = rows["pct"] * rows["secondary_benefit"]
    return rows[ALLOCATION_COLUMNS]


def summarize_secondary(rows: pd.DataFrame, projects: Sequence[str] = ()) -> pd.DataFrame:
    """Secondary benefits per project, including projects without allocation rows."""
    secondary = rows.groupby("proj_id")["final"].sum()
    secondary = secondary.reindex(sorted(set(secondary.index) | set(projects)), fill_value=0.0)
    return pd.DataFrame(
        {"proj_id": secondary.index, "secondary_benefits": secondary.to_numpy(dtype=float)}
    )


def allocate_secondary_benefits(
    links: pd.DataFrame,
    distances: DistanceMatrix,
    buffer_query: LinkBufferQuery,
    settings: Optional[AllocationConfig] = None,
    cancel_token: Optional[CancelToken] = None,
    logger: Optional[Logger] = None,
):
    """Allocate secondary benefits to the projects with a net capacity change.

    Returns:
        Tuple of the normalized allocation rows and the secondary benefits per project
    """
    projects = allocation_projects(links)
    rows = collect_allocation_rows(
        links, projects, distances, buffer_query, settings, cancel_token, logger
    )
    rows = normalize_allocation(rows)
    return rows, summarize_secondary(rows, projects)


class SecondaryAllocation(Component):
    """Allocate link secondary benefits to nearby projects.

    Governed by AllocationConfig:
        max_buffer:
        decay_exponent:
        min_distance:
        buffer_query:
        distance_matrix_file:
        distance_matrix_name:

    The distance matrix and buffer query can be replaced before run, e.g. with
    a precalculated DistanceMatrix.
    """

    def __init__(self, controller: RunController):
        """Constructor for SecondaryAllocation.

        Args:
            controller (RunController): Reference to run controller object.
        """
        super().__init__(controller)
        self.settings = self.config.allocation
        self.sub_components = {
            "distance matrix": DistanceMatrixBuilder(controller, self),
        }
        self.distance_matrix: Optional[DistanceMatrix] = None
        self.buffer_query: Optional[LinkBufferQuery] = None

    def validate_inputs(self):
        """Validate the geometry buffer query is used with a spatial build network."""
        if self.settings.buffer_query == "geometry":
            ext = str(self.config.scenario.build_network).lower()
            if ext.endswith(".csv"):
                raise ConfigurationError(
                    "allocation.buffer_query 'geometry' requires a spatial build network,"
                    f" found {self.config.scenario.build_network}"
                )

    def _get_buffer_query(self, context: RunContext) -> LinkBufferQuery:
        if self.buffer_query is not None:
            return self.buffer_query
        if self.settings.buffer_query == "geometry":
            return GeometryBufferQuery(context.require("geometry"))
        return NetworkBufferQuery(context.links, self.distance_matrix)

    @LogStartEnd("Secondary benefit allocation", level="STATUS")
    def run(self, context: RunContext) -> RunContext:
        """Allocate secondary benefits and add allocation and secondary to the context."""
        links = context.require("links")
        if self.distance_matrix is None:
            self.distance_matrix = self.sub_components["distance matrix"].run(links)
        rows, secondary = allocate_secondary_benefits(
            links,
            self.distance_matrix,
            self._get_buffer_query(context),
            self.settings,
            self.cancel_token,
            self.logger,
        )
        self.logger.log(
            f"{len(rows)} allocation rows, {rows['buffer_link_id'].nunique()} donor links,"
            f" {rows['final'].sum():.4f} secondary benefits allocated"
        )
        return dataclasses.replace(context, allocation=rows, secondary=secondary)

    def write_distance_matrix(self):
        """Write the calculated distance matrix to allocation.distance_matrix_file."""
        self.sub_components["distance matrix"].write()
