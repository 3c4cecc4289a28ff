"""Selection of the links near a given link.

The secondary allocation asks for the "donor" links within a search radius of
each project link. Two implementations are provided:

NetworkBufferQuery: by network distance between link end nodes, using the
    DistanceMatrix
GeometryBufferQuery: by straight-line distance, buffering the link geometry
    and intersecting with the other links using the geopandas spatial index
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Collection, Hashable, List

import numpy as np
import pandas as pd

from delayalloc.components.network.distance import DistanceMatrix

if TYPE_CHECKING:
    import geopandas as gpd


class LinkBufferQuery(ABC):
    """Select all links within distance of a link, excluding a set of links."""

    @abstractmethod
    def links_within(
        self, link_id: Hashable, distance: float, exclude: Collection[Hashable] = ()
    ) -> List[Hashable]:
        """IDs of the links within distance of link_id, in link table order.

        Args:
            link_id: ID of the link to search around
            distance: search radius
            exclude: link IDs which are never returned
        """


class NetworkBufferQuery(LinkBufferQuery):
    """Links with either end node within network distance of either end node of the link."""

    def __init__(
        self,
        links: pd.DataFrame,
        distances: DistanceMatrix,
        id_field: str = "id",
        a_field: str = "a_node",
        b_field: str = "b_node",
    ):
        """Constructor for NetworkBufferQuery.

        Args:
            links: link table with ID, start node and end node
            distances: node to node distances
            id_field: link ID field name
            a_field: start node field name
            b_field: end node field name
        """
        self._distances = distances
        self._link_ids = links[id_field].to_numpy()
        self._endpoints = pd.Series(
            list(zip(links[a_field], links[b_field])), index=links[id_field]
        )
        self._a_idx = distances.indices(links[a_field])
        self._b_idx = distances.indices(links[b_field])

    def links_within(
        self, link_id: Hashable, distance: float, exclude: Collection[Hashable] = ()
    ) -> List[Hashable]:
        a_node, b_node = self._endpoints.loc[link_id]
        # distance from the nearer end of link_id to every node, inf for unknown nodes
        near = self._distances.distances([a_node, b_node], self._distances.node_ids)
        near = np.append(near.min(axis=0), np.inf)
        link_dist = np.minimum(near[self._a_idx], near[self._b_idx])
        selected = self._link_ids[link_dist <= distance]
        exclude = set(exclude)
        return [i for i in selected if i not in exclude]


class GeometryBufferQuery(LinkBufferQuery):
    """Links intersecting the buffer of the link geometry."""

    def __init__(self, links: "gpd.GeoDataFrame", id_field: str = "id"):
        """Constructor for GeometryBufferQuery.

        Args:
            links: GeoDataFrame of link ID and geometry, in a projected CRS
                with the same length units as the search distances
            id_field: link ID field name
        """
        self._links = links.reset_index(drop=True)
        self._id_field = id_field
        self._geometry = pd.Series(
            self._links.geometry.to_numpy(), index=self._links[id_field]
        )

    def links_within(
        self, link_id: Hashable, distance: float, exclude: Collection[Hashable] = ()
    ) -> List[Hashable]:
        buffer = self._geometry.loc[link_id].buffer(distance)
        hits = np.sort(self._links.sindex.query(buffer, predicate="intersects"))
        exclude = set(exclude)
        return [
            i for i in self._links[self._id_field].iloc[hits] if i not in exclude
        ]
