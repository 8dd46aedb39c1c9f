"""
Integration tests for the analysis table assembler.

Tests cover:
- The univariate and bivariate tracks end to end
- Pruning of undefined curves and under-replicated species
- Outlier exclusion and partial failure reports
- Parallel dispatch and snapshots
"""
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pandas as pd
import pytest

from treeclust import (AnalysisConfig, AnalysisTable, AnalysisTableAssembler,
                       EmptyAnalysisError, WindowRegistry, assign_cohorts,
                       radii)


@pytest.fixture
def assembler(registry, covariates, dispersal, config):
    return AnalysisTableAssembler(registry, covariates, dispersal,
                                  config=config)


def _by_key(table):
    return {(row.site, row.species, row.cohort): row for row in table}


# ============================================================
# End-to-end Tests
# ============================================================

class TestUnivariateTrack:
    """Tests for the univariate analysis table."""

    def test_two_sites(self, assembler, census_stems):
        table = assembler.univariate(census_stems)

        assert len(table) == 4
        assert table.pairs == {('A', 'sp1'), ('B', 'sp1')}
        assert set(_by_key(table)) == {
            ('A', 'sp1', 'sapling'), ('A', 'sp1', 'small'),
            ('B', 'sp1', 'sapling'), ('B', 'sp1', 'small')}
        for row in table:
            assert row.track == 'univariate'
            assert row.curve.defined
            assert len(row.curve) == 6
            assert len(row.weights) == 6
        assert table.failures == ()

    def test_curve_values(self, assembler, census_stems):
        row = _by_key(assembler.univariate(census_stems))['A', 'sp1',
                                                          'sapling']
        r = radii(5)
        # No other qualifying species: the Poisson curve is subtracted
        expected = np.array([0.0, 0.0, 50.0, 50.0, 50.0, 50.0])
        np.testing.assert_allclose(row.curve.empirical,
                                   expected - np.pi * r ** 2)
        np.testing.assert_allclose(row.weights,
                                   [0.04, 0.04, 0.04, 0.04, 0.04, 0.02])
        assert row.n_focal == 2
        assert row.n_other == 0

    def test_covariates_passed_through(self, assembler, census_stems):
        row = _by_key(assembler.univariate(census_stems))['B', 'sp1',
                                                          'small']
        assert row.covariates == dict(forest='F1', plot='south',
                                      hunting=0.8, primate_density=0.4)

    def test_heterospecific_from_qualifying_species(self, assembler,
                                                    make_stems, site_rows):
        rows = (site_rows('A') +
                site_rows('A', 'sp2', prefix='X') +
                # sp4 has no dispersal data and does not qualify
                site_rows('A', 'sp4', prefix='Y'))
        table = assembler.univariate(assign_cohorts(make_stems(rows)))

        assert table.pairs == {('A', 'sp1'), ('A', 'sp2')}
        row = _by_key(table)['A', 'sp1', 'sapling']
        assert sorted(row.patterns['other'].ids.tolist()) == ['X1', 'X2']

    def test_thread_pool_matches_serial(self, assembler, census_stems):
        serial = assembler.univariate(census_stems)
        with ThreadPoolExecutor(max_workers=2) as executor:
            parallel = assembler.univariate(census_stems,
                                            mapper=executor.map)

        assert set(_by_key(parallel)) == set(_by_key(serial))
        for (key, row) in _by_key(serial).items():
            np.testing.assert_array_equal(
                _by_key(parallel)[key].curve.empirical, row.curve.empirical)


class TestBivariateTrack:
    """Tests for the bivariate analysis table."""

    def test_two_sites(self, assembler, census_stems, registry):
        table = assembler.bivariate(census_stems)

        assert len(table) == 4
        for row in table:
            assert row.track == 'bivariate'
            assert row.curve.defined
            assert len(row.weights) == 6
            assert row.patterns['adults'].window == registry.buffered_window(
                row.site, 5)
            assert row.n_other == 2

    def test_buffer_adults_without_full_window(self, core_square, covariates,
                                               dispersal, config, make_stems,
                                               site_rows):
        """Adults counted towards the bivariate rule are the adults the
        bivariate patterns are built from, also without a full window."""
        assembler = AnalysisTableAssembler(
            WindowRegistry(core={'A': core_square}), covariates, dispersal,
            config=config)
        rows = site_rows('A')[:4] + [
            ('A', 'sp1', 'A7', 20.0, False, -2.0, 5.0),
            ('A', 'sp1', 'A8', 20.0, False, 12.0, 5.0),
        ]
        stems = assign_cohorts(make_stems(rows))

        flags = assembler.flags(stems)
        assert flags.loc[('A', 'sp1'), 'buffer_adults'] == 2
        assert flags.loc[('A', 'sp1'), 'qbi']

        table = assembler.bivariate(stems)
        assert len(table) == 2
        for row in table:
            assert row.n_other == 2
            assert row.curve.defined

    def test_no_adults_in_buffer_reported(self, assembler, make_stems,
                                          site_rows):
        stems = assign_cohorts(make_stems(site_rows('A')[:4]))
        rows, failures = assembler.bivariate_rows(stems, 'A', 'sp1',
                                                  ['sapling', 'small'])
        assert rows == []
        assert len(failures) == 1
        assert (failures[0].site, failures[0].species,
                failures[0].cohort) == ('A', 'sp1', None)
        assert failures[0].reason == 'no adults inside the buffered window'

    def test_outliers_removed(self, registry, covariates, dispersal,
                              census_stems):
        plain = AnalysisTableAssembler(
            registry, covariates, dispersal,
            config=AnalysisConfig(rmax=5, outliers=()))
        pruned = AnalysisTableAssembler(
            registry, covariates, dispersal,
            config=AnalysisConfig(rmax=5, outliers=[('A', 'sp1')]))

        full_table = plain.bivariate(census_stems)
        table = pruned.bivariate(census_stems)

        assert table.pairs == {('B', 'sp1')}
        assert len(table) == 2
        for (key, row) in _by_key(table).items():
            reference = _by_key(full_table)[key]
            np.testing.assert_array_equal(row.curve.empirical,
                                          reference.curve.empirical)
            np.testing.assert_array_equal(row.weights, reference.weights)
        reasons = {f.reason for f in table.failures if f.site == 'A'}
        assert reasons == {'excluded as outlier'}

    def test_outliers_ignored_by_univariate_track(self, registry, covariates,
                                                  dispersal, census_stems):
        assembler = AnalysisTableAssembler(
            registry, covariates, dispersal,
            config=AnalysisConfig(rmax=5, outliers=[('A', 'sp1')]))
        assert len(assembler.univariate(census_stems)) == 4


# ============================================================
# Table Tests
# ============================================================

class TestAnalysisTable:
    """Tests for AnalysisTable."""

    def test_exclude_keeps_row_objects(self, assembler, census_stems):
        table = assembler.univariate(census_stems)
        kept = table.exclude([('A', 'sp1')])

        assert len(kept) == 2
        for row in kept:
            assert any(row is original for original in table)
        assert len(kept.failures) == 2

    def test_to_frame(self, assembler, census_stems):
        frame = assembler.univariate(census_stems).to_frame()
        assert len(frame) == 4
        for column in ['track', 'site', 'species', 'cohort', 'forest',
                       'hunting', 'n_focal', 'n_other', 'curve', 'weights']:
            assert column in frame.columns

    def test_curves_frame(self, assembler, census_stems):
        frame = assembler.univariate(census_stems).curves_frame()
        assert list(frame.columns) == ['site', 'species', 'cohort', 'r',
                                       'empirical', 'theoretical', 'weight']
        assert len(frame) == 4 * 6

    def test_constants(self, assembler, census_stems):
        table = assembler.univariate(census_stems)
        assert table.constants['rmax'] == 5
        assert table.constants['min_interior'] == 1

    def test_snapshot_roundtrip(self, assembler, census_stems, tmp_path):
        table = assembler.bivariate(census_stems)
        filename = tmp_path / 'bivariate.pkl'
        table.save(filename)
        restored = AnalysisTable.load(filename)

        assert restored.track == 'bivariate'
        assert restored.constants == table.constants
        pd.testing.assert_frame_equal(restored.curves_frame(),
                                      table.curves_frame())
        row = restored[0]
        assert len(row.patterns['focal']) == len(table[0].patterns['focal'])
        assert row.curve.window == table[0].curve.window

    def test_load_rejects_other_objects(self, tmp_path):
        import pickle

        filename = tmp_path / 'other.pkl'
        with open(filename, 'wb') as f:
            pickle.dump({'not': 'a table'}, f)
        with pytest.raises(ValueError):
            AnalysisTable.load(filename)


# ============================================================
# Filtering and Failure Tests
# ============================================================

class TestFiltering:
    """Tests for pruning, partial failures and empty results."""

    def test_undefined_curves_pruned(self, assembler, make_stems,
                                     site_rows):
        rows = site_rows('A') + [
            # Small stems too close to the boundary for r >= 2
            ('B', 'sp1', 'B1', np.nan, True, 5.0, 5.0),
            ('B', 'sp1', 'B2', np.nan, True, 6.0, 6.0),
            ('B', 'sp1', 'B3', 1.5, False, 1.0, 1.0),
            ('B', 'sp1', 'B4', 1.5, False, 9.0, 9.0),
            ('B', 'sp1', 'B5', 20.0, False, 2.0, 2.0),
            ('B', 'sp1', 'B6', 20.0, False, 8.0, 8.0),
        ]
        table = assembler.univariate(assign_cohorts(make_stems(rows)))

        assert table.pairs == {('A', 'sp1')}
        failures = table.failures_frame().set_index('cohort')
        assert failures.loc['small', 'reason'] == (
            'K-curve undefined at some radius')
        assert failures.loc['sapling', 'reason'] == (
            'too few cohorts left after pruning')

    def test_unknown_site_reported(self, assembler, make_stems, site_rows):
        rows = site_rows('A') + site_rows('B') + site_rows('C')
        table = assembler.univariate(assign_cohorts(make_stems(rows)))

        assert table.pairs == {('A', 'sp1'), ('B', 'sp1')}
        assert len(table.failures) == 1
        failure = table.failures[0]
        assert (failure.site, failure.species, failure.cohort) == ('C', 'sp1',
                                                                   None)
        assert "'C'" in failure.reason

    def test_missing_covariates_reported(self, registry, dispersal,
                                         covariates, census_stems):
        assembler = AnalysisTableAssembler(
            registry, covariates.loc[covariates['site'] != 'B'], dispersal,
            config=AnalysisConfig(rmax=5, outliers=()))
        table = assembler.bivariate(census_stems)
        assert table.pairs == {('A', 'sp1')}
        assert [f.site for f in table.failures] == ['B']

    def test_empty_table_raises(self, registry, covariates, dispersal,
                                census_stems):
        # No point lies 6 units inside the 10 x 10 core windows
        assembler = AnalysisTableAssembler(
            registry, covariates, dispersal,
            config=AnalysisConfig(rmax=6, outliers=()))
        with pytest.raises(EmptyAnalysisError):
            assembler.univariate(census_stems)

    def test_duplicate_covariates(self, registry, covariates, dispersal):
        with pytest.raises(ValueError):
            AnalysisTableAssembler(registry,
                                   pd.concat([covariates, covariates]),
                                   dispersal)

    def test_unknown_track(self, assembler, census_stems):
        with pytest.raises(ValueError):
            assembler.units('trivariate', census_stems)

    def test_units(self, assembler, census_stems):
        units = assembler.units('univariate', census_stems)
        assert [(site, species, cohorts, others)
                for (site, species, cohorts, others, __) in units] == [
            ('A', 'sp1', ['sapling', 'small'], []),
            ('B', 'sp1', ['sapling', 'small'], [])]
