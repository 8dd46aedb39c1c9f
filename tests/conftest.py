"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- Square core and full windows
- A stem table factory
- A two-site census with one qualifying species per site
"""
import numpy as np
import pandas as pd
import pytest

from treeclust import AnalysisConfig, Window, WindowRegistry, assign_cohorts
from treeclust.stems import STEM_COLUMNS


# ============================================================
# Geometry Fixtures
# ============================================================

@pytest.fixture
def core_square() -> Window:
    """A 10 x 10 core window with its lower left corner at the origin."""
    return Window([(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)])


@pytest.fixture
def full_square() -> Window:
    """A 20 x 20 full window centered on the core window."""
    return Window([(-5.0, -5.0), (15.0, -5.0), (15.0, 15.0), (-5.0, 15.0)])


@pytest.fixture
def registry(core_square, full_square) -> WindowRegistry:
    """Registry with the same core and full windows for sites A and B."""
    return WindowRegistry(core={'A': core_square, 'B': core_square},
                          full={'A': full_square, 'B': full_square})


# ============================================================
# Table Fixtures
# ============================================================

@pytest.fixture
def make_stems():
    """Factory turning (site, species, tag, dbh, sapling, x, y) tuples into
    a stem table."""
    def _make(rows):
        stems = pd.DataFrame(rows, columns=list(STEM_COLUMNS))
        stems['dbh'] = stems['dbh'].astype(float)
        stems['sapling'] = stems['sapling'].astype(bool)
        return stems
    return _make


def _site_rows(site, species='sp1', prefix=None):
    """Two saplings, two small stems and two adults, all in the core.

    The sapling and the small stem at the center (5, 5) are the only points
    5 units from the boundary of the 10 x 10 core, so each of these cohorts
    keeps one eligible point, and a defined curve, up to r = 5.
    """
    prefix = prefix or site
    return [
        (site, species, f'{prefix}1', np.nan, True, 5.0, 5.0),
        (site, species, f'{prefix}2', np.nan, True, 6.0, 6.0),
        (site, species, f'{prefix}3', 1.5, False, 5.0, 5.0),
        (site, species, f'{prefix}4', 1.5, False, 4.0, 4.0),
        (site, species, f'{prefix}5', 20.0, False, 2.0, 2.0),
        (site, species, f'{prefix}6', 20.0, False, 8.0, 8.0),
    ]


@pytest.fixture
def site_rows():
    """Expose the per-site row generator to tests."""
    return _site_rows


@pytest.fixture
def census_stems(make_stems) -> pd.DataFrame:
    """Two sites with one qualifying species each, cohorts assigned."""
    return assign_cohorts(make_stems(_site_rows('A') + _site_rows('B')))


@pytest.fixture
def covariates() -> pd.DataFrame:
    """Site covariates for sites A, B and C."""
    return pd.DataFrame({
        'site': ['A', 'B', 'C'],
        'forest': ['F1', 'F1', 'F2'],
        'plot': ['north', 'south', 'east'],
        'hunting': [0.1, 0.8, 0.5],
        'primate_density': [3.2, 0.4, 1.1],
    })


@pytest.fixture
def dispersal() -> pd.DataFrame:
    """Dispersal guilds for sp1, sp2 and sp3; sp4 has no data."""
    return pd.DataFrame({
        'species': ['sp1', 'sp2', 'sp3', 'sp4'],
        'primates': [1, 0, 1, np.nan],
        'birds': [0, 1, 1, np.nan],
    })


@pytest.fixture
def config() -> AnalysisConfig:
    """Small analysis radius fitting the 10 x 10 core windows."""
    return AnalysisConfig(rmax=5, outliers=())
