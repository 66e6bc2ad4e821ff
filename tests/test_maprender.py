"""
Tests for map image rendering.
"""

from balloony.services.maprender import MapRenderer
from conftest import FakePredictions, make_record


def test_renders_png():
    image = MapRenderer(width_px=320, height_px=240).render(
        make_record(), FakePredictions().prediction,
    )

    assert image.startswith(b'\x89PNG')


def test_disabled_returns_none():
    renderer = MapRenderer(enabled=False)

    assert renderer.render(make_record(), FakePredictions().prediction) is None


def test_descending_sonde_without_path():
    prediction = FakePredictions().prediction
    prediction.path = []

    image = MapRenderer(width_px=320, height_px=240).render(
        make_record(vel_v=-5.0), prediction,
    )

    assert image.startswith(b'\x89PNG')
