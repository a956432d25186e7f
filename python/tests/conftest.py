"""
Pytest configuration and fixtures for hsxtree tests.
"""
from typing import Callable, Sequence

import pytest

from python.tests.tree_image import MapImage, MapImageBuilder


@pytest.fixture
def build_map() -> Callable[..., MapImage]:
    """Build a libc++-shaped map image; keyword options go to MapImageBuilder."""

    def _build(items: Sequence, **options) -> MapImage:
        return MapImageBuilder(**options).build(items)

    return _build
