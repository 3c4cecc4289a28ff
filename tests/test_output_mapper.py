"""Testing module for the link detail output."""

import pytest


def test_link_detail_table(classified_links):
    from delayalloc.components.output_mapper import link_detail

    detail = link_detail(classified_links)
    assert detail is not classified_links
    assert detail["id"].tolist() == [1, 2, 3, 4, 5]
    assert "ab_prim_ben" in detail.columns


def test_link_detail_geometry(classified_links):
    import geopandas as gpd
    from shapely.geometry import LineString

    from delayalloc.components.output_mapper import link_detail

    geometry = gpd.GeoDataFrame(
        {"id": [2, 1, 7]},
        geometry=[LineString([(1, 0), (2, 0)]), LineString([(0, 0), (1, 0)]), LineString([(5, 5), (6, 5)])],
    )
    detail = link_detail(classified_links, geometry)
    assert isinstance(detail, gpd.GeoDataFrame)
    # only links found in both
    assert sorted(detail["id"].tolist()) == [1, 2]
    assert detail.set_index("id").loc[1, "category"] == "Primary"


def test_run_context_require(classified_links):
    import dataclasses

    from delayalloc.components.component import ConfigurationError, RunContext

    context = RunContext()
    with pytest.raises(ConfigurationError, match="links"):
        context.require("links")
    context = dataclasses.replace(context, links=classified_links)
    assert context.require("links") is classified_links
    with pytest.raises(dataclasses.FrozenInstanceError):
        context.links = None
