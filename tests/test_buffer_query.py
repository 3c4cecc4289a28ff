"""Testing module for the link buffer queries."""

import pytest

from tools import link_table

CORRIDOR = [(1, 1, 2, 1.0), (2, 2, 3, 1.0), (3, 3, 4, 1.0), (4, 4, 5, 2.0), (5, 1, 5, 3.0)]
COORDS = {1: (0, 0), 2: (1, 0), 3: (2, 0), 4: (3, 0), 5: (3, 2)}


@pytest.fixture()
def network_query():
    from delayalloc.components.network.buffer_query import NetworkBufferQuery
    from delayalloc.components.network.distance import DistanceMatrix

    links = link_table(CORRIDOR)
    return NetworkBufferQuery(links, DistanceMatrix.from_links(links))


@pytest.fixture()
def geometry_query():
    import geopandas as gpd
    from shapely.geometry import LineString

    from delayalloc.components.network.buffer_query import GeometryBufferQuery

    links = link_table(CORRIDOR)
    geometry = [LineString([COORDS[a], COORDS[b]]) for a, b in zip(links.a_node, links.b_node)]
    return GeometryBufferQuery(gpd.GeoDataFrame(links[["id"]], geometry=geometry))


def test_network_links_within(network_query):
    assert network_query.links_within(1, 2.0, exclude={1, 2}) == [3, 4, 5]
    assert network_query.links_within(2, 2.0, exclude={1, 2}) == [3, 4, 5]
    assert network_query.links_within(1, 0.5) == [1, 2, 5]
    assert network_query.links_within(3, 0.0, exclude=[3]) == [2, 4]


def test_network_unknown_link(network_query):
    with pytest.raises(KeyError):
        network_query.links_within(99, 1.0)


def test_geometry_links_within(geometry_query):
    assert geometry_query.links_within(1, 0.5) == [1, 2, 5]
    assert geometry_query.links_within(1, 0.5, exclude={1}) == [2, 5]
    assert geometry_query.links_within(3, 0.1, exclude={3}) == [2, 4]
