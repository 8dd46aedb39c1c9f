#!/usr/bin/env python

"""File: analysis.py
Module to assemble the analysis table: one row per site, species and cohort,
carrying site covariates, point patterns, inhomogeneity-corrected K-curves and
reliability weights, pruned to the rows with enough data.

"""
# Copyright 2015 Daniel Wennberg
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import logging
import pickle
from collections import namedtuple
from collections.abc import Sequence
from functools import partial
import numpy
import pandas

from .cohorts import replication_flags, qualifies
from .config import AnalysisConfig
from .errors import UnknownSiteError, WindowMismatchError, EmptyAnalysisError
from .kfunctions import radii, univariate, cross_type, poisson_curve, correct
from .pointpatterns import PointPatternBuilder
from .utils import AlmostImmutable
from .weights import kfunc_weights_calc

logger = logging.getLogger(__name__)

TRACKS = ('univariate', 'bivariate')

Failure = namedtuple('Failure', ['site', 'species', 'cohort', 'reason'])


class AnalysisRow(AlmostImmutable):
    """
    Represent the analysis of one cohort of one species at one site

    Parameters
    ----------
    track : str {'univariate', 'bivariate'}
        Analysis track the row belongs to.
    site, species, cohort :
        Identifiers of the row.
    covariates : dict
        Site covariates, passed through unchanged.
    patterns : dict
        Point patterns the curve was estimated from. The univariate track
        holds 'focal' and 'other' (heterospecific, same cohort), the
        bivariate track 'focal', 'adults' (conspecific adults) and 'other'
        (heterospecific adults).
    curve : KCurve
        Inhomogeneity-corrected curve.
    weights : array-like
        Reliability weights, aligned with `curve.r`.

    """

    def __init__(self, track, site, species, cohort, covariates, patterns,
                 curve, weights):
        weights = numpy.array(weights, dtype=numpy.float64)
        if weights.shape != curve.r.shape:
            raise ValueError("need one weight per radius, got {} weights for "
                             "{} radii".format(weights.size, len(curve)))
        weights.flags.writeable = False
        self.track = track
        self.site = site
        self.species = species
        self.cohort = cohort
        self.covariates = dict(covariates)
        self.patterns = dict(patterns)
        self.curve = curve
        self.weights = weights

    def __repr__(self):
        return "{}({!r}, {!r}, {!r}, {!r})".format(
            self.__class__.__name__, self.track, self.site, self.species,
            self.cohort)

    @property
    def n_focal(self):
        return len(self.patterns['focal'])

    @property
    def n_other(self):
        """
        Number of heterospecific points (univariate) or conspecific adults
        (bivariate)

        """
        key = 'other' if self.track == 'univariate' else 'adults'
        return len(self.patterns[key])

    def summary(self):
        summary = dict(track=self.track, site=self.site,
                       species=self.species, cohort=self.cohort)
        summary.update(self.covariates)
        summary.update(n_focal=self.n_focal, n_other=self.n_other)
        return summary


class AnalysisTable(AlmostImmutable, Sequence):
    """
    Represent an assembled analysis table

    The table is a sequence of `AnalysisRow` instances, together with the
    failures collected while assembling it and the constants of the run.

    Parameters
    ----------
    rows : iterable
        AnalysisRow instances.
    track : str {'univariate', 'bivariate'}
        Analysis track of the rows.
    failures : iterable, optional
        Failure records.
    constants : dict, optional
        Run constants, see `AnalysisConfig.constants`.

    """

    def __init__(self, rows, track, failures=(), constants=None):
        self.rows = tuple(rows)
        self.track = track
        self.failures = tuple(failures)
        self.constants = dict(constants or {})

    # Implement abstract methods
    def __getitem__(self, index):
        return self.rows[index]

    def __len__(self):
        return len(self.rows)

    def __repr__(self):
        return "{}({!r}, rows={}, failures={})".format(
            self.__class__.__name__, self.track, len(self),
            len(self.failures))

    @property
    def pairs(self):
        """
        The (site, species) pairs present in the table

        """
        return frozenset((row.site, row.species) for row in self.rows)

    def exclude(self, pairs, reason='excluded as outlier'):
        """
        Remove all rows of the given (site, species) pairs

        The remaining rows are the very same objects as in this table; nothing
        is recomputed.

        Parameters
        ----------
        pairs : iterable
            (site, species) pairs to remove.
        reason : str, optional
            Reason recorded in the failure report of the new table.

        Returns
        -------
        AnalysisTable
            New table.

        """
        pairs = frozenset(tuple(pair) for pair in pairs)
        kept, failures = [], list(self.failures)
        for row in self.rows:
            if (row.site, row.species) in pairs:
                failures.append(Failure(row.site, row.species, row.cohort,
                                        reason))
            else:
                kept.append(row)
        return type(self)(kept, self.track, failures=failures,
                          constants=self.constants)

    def to_frame(self):
        """
        Return the table as a DataFrame with one row per analysis row

        The scalar fields become ordinary columns; the 'curve' and 'weights'
        columns hold the KCurve instances and weight arrays.

        """
        records = []
        for row in self.rows:
            record = row.summary()
            record.update(curve=row.curve, weights=row.weights)
            records.append(record)
        return pandas.DataFrame(records)

    def curves_frame(self):
        """
        Return the curves and weights of all rows in long format

        Returns
        -------
        DataFrame
            DataFrame with the columns 'site', 'species', 'cohort', 'r',
            'empirical', 'theoretical' and 'weight'.

        """
        columns = ['site', 'species', 'cohort', 'r', 'empirical',
                   'theoretical', 'weight']
        frames = []
        for row in self.rows:
            frame = row.curve.to_frame()
            frame['weight'] = row.weights
            frame.insert(0, 'cohort', row.cohort)
            frame.insert(0, 'species', row.species)
            frame.insert(0, 'site', row.site)
            frames.append(frame)
        if not frames:
            return pandas.DataFrame(columns=columns)
        return pandas.concat(frames, ignore_index=True)[columns]

    def failures_frame(self):
        """
        Return the failure report as a DataFrame with the columns 'site',
        'species', 'cohort' and 'reason'

        """
        return pandas.DataFrame(list(self.failures), columns=Failure._fields)

    def save(self, filename):
        """
        Save a snapshot of the table, including point patterns, curves and
        run constants

        """
        with open(filename, 'wb') as f:
            pickle.dump(self, f, protocol=pickle.HIGHEST_PROTOCOL)

    @classmethod
    def load(cls, filename):
        """
        Load a snapshot saved with `AnalysisTable.save`

        """
        with open(filename, 'rb') as f:
            table = pickle.load(f)
        if not isinstance(table, cls):
            raise ValueError("{} does not contain a {} snapshot"
                             .format(filename, cls.__name__))
        return table


def _analyze_unit(assembler, track, unit):
    # Module-level so that process pools can pickle it
    site, species, cohorts, others, site_stems = unit
    try:
        if track == 'univariate':
            return assembler.univariate_rows(site_stems, site, species,
                                             cohorts, others)
        return assembler.bivariate_rows(site_stems, site, species, cohorts)
    except UnknownSiteError as exc:
        logger.warning(f"Skipping species {species!r} at site {site!r}: "
                       f"{exc}")
        return [], [Failure(site, species, None, str(exc))]


class AnalysisTableAssembler(AlmostImmutable):
    """
    Assemble univariate and bivariate analysis tables from a stem table

    Each qualifying (site, species) pair is an independent work unit. The
    units are dispatched through a map-like callable, so they can be spread
    over a pool of workers, and the results are joined and pruned
    afterwards.

    Parameters
    ----------
    registry : WindowRegistry
        Windows of all sites.
    covariates : DataFrame
        Site covariate table with a 'site' column. All other columns are
        passed through into the rows.
    dispersal : DataFrame
        Dispersal-trait table, see `cohorts.replication_flags`.
    config : AnalysisConfig, optional
        Run constants. Defaults to `AnalysisConfig()`.

    """

    def __init__(self, registry, covariates, dispersal, config=None):
        if config is None:
            config = AnalysisConfig()
        dupes = covariates['site'].duplicated()
        if dupes.any():
            raise ValueError("site covariates are not unique for site(s) {}"
                             .format(covariates.loc[dupes, 'site'].tolist()))
        self.registry = registry
        self.covariates = {}
        for record in covariates.to_dict(orient='records'):
            self.covariates[record.pop('site')] = record
        self.dispersal = dispersal
        self.config = config
        self.builder = PointPatternBuilder(registry, labels=config.labels)
        self.r = radii(config.rmax)

    def site_covariates(self, site):
        try:
            return self.covariates[site]
        except KeyError:
            raise UnknownSiteError(site, what='covariates') from None

    def flags(self, stems):
        """
        Compute the replication flags of all (site, species) pairs, counting
        adults inside the plus-sampling windows

        """
        cfg = self.config
        return replication_flags(stems, self.dispersal, labels=cfg.labels,
                                 min_interior=cfg.min_interior,
                                 registry=self.registry, radius=cfg.rmax)

    def _curve(self, focal, comparison, other):
        # Conspecific curve minus heterospecific curve
        correction = self.config.correction
        if comparison is None:
            kcon = univariate(focal, self.r, edge_correction=correction)
        else:
            kcon = cross_type(focal, comparison, self.r,
                              edge_correction=correction)
        if len(other):
            khet = cross_type(focal, other, self.r,
                              edge_correction=correction)
        else:
            logger.debug("No heterospecific points, subtracting the Poisson "
                         "curve instead")
            khet = poisson_curve(self.r, kcon.window)
        return correct(kcon, khet)

    def univariate_rows(self, stems, site, species, cohorts, others):
        """
        Analyze one species at one site in the univariate track

        For each cohort, the univariate K-curve of the focal species is
        corrected by subtracting the cross-type K-curve from the focal species
        to the other qualifying species of the same cohort, all in the core
        window.

        Returns
        -------
        rows : list
            AnalysisRow instances, one per cohort.
        failures : list
            Failure records for cohorts that could not be analyzed.

        """
        cfg = self.config
        covariates = self.site_covariates(site)
        con = self.builder.conspecific(stems, site, species, cohorts)
        het = self.builder.heterospecific(stems, site, species, cohorts,
                                          others=others)
        rows, failures = [], []
        for cohort in cohorts:
            focal, other = con[cohort], het[cohort]
            try:
                curve = self._curve(focal, None, other)
            except WindowMismatchError as exc:
                logger.warning(f"Skipping cohort {cohort!r} of species "
                               f"{species!r} at site {site!r}: {exc}")
                failures.append(Failure(site, species, cohort, str(exc)))
                continue
            weights = kfunc_weights_calc(focal, r=self.r,
                                         correction=cfg.correction,
                                         weight_type=cfg.weight_type)
            rows.append(AnalysisRow('univariate', site, species, cohort,
                                    covariates,
                                    dict(focal=focal, other=other),
                                    curve, weights))
        return rows, failures

    def bivariate_rows(self, stems, site, species, cohorts):
        """
        Analyze one species at one site in the bivariate track

        For each cohort, the cross-type K-curve from the focal cohort to the
        conspecific adults is corrected by subtracting the cross-type K-curve
        from the focal cohort to the heterospecific adults. The adults are
        plus sampled in the core window dilated by `rmax`.

        Returns
        -------
        rows : list
            AnalysisRow instances, one per cohort.
        failures : list
            Failure records for cohorts that could not be analyzed.

        """
        cfg = self.config
        covariates = self.site_covariates(site)
        if not self.builder.bivariate_species(stems, site, [species],
                                              cfg.rmax):
            return [], [Failure(site, species, None,
                                'no adults inside the buffered window')]

        con = self.builder.conspecific(stems, site, species, cohorts)
        adults, other = self.builder.adults(stems, site, species, cfg.rmax)
        rows, failures = [], []
        for cohort in cohorts:
            focal = con[cohort]
            try:
                curve = self._curve(focal, adults, other)
            except WindowMismatchError as exc:
                logger.warning(f"Skipping cohort {cohort!r} of species "
                               f"{species!r} at site {site!r}: {exc}")
                failures.append(Failure(site, species, cohort, str(exc)))
                continue
            weights = kfunc_weights_calc(focal, adults, r=self.r,
                                         correction=cfg.correction,
                                         weight_type=cfg.weight_type)
            rows.append(AnalysisRow('bivariate', site, species, cohort,
                                    covariates,
                                    dict(focal=focal, adults=adults,
                                         other=other),
                                    curve, weights))
        return rows, failures

    def units(self, track, stems, flags=None):
        """
        List the work units of a track

        Each unit is a tuple (site, species, cohorts, others, site_stems):
        the cohorts with more than one stem to analyze, the other qualifying
        species at the site (used for the heterospecific patterns of the
        univariate track), and the stems of the site.

        """
        if track not in TRACKS:
            raise ValueError("unknown track: {}".format(track))
        if flags is None:
            flags = self.flags(stems)

        column = 'quni' if track == 'univariate' else 'qbi'
        qualified = flags.loc[flags[column]]
        cohorts_all = self.config.labels[:-1]

        units = []
        for (site, site_flags) in qualified.groupby(level='site',
                                                    sort=False):
            site_stems = stems.loc[stems['site'] == site]
            species_list = site_flags.index.get_level_values('species')
            for species in species_list:
                counts = site_flags.loc[(site, species)]
                cohorts = [c for c in cohorts_all if counts[c] > 1]
                others = [sp for sp in species_list if sp != species]
                units.append((site, species, cohorts, others, site_stems))
        return units

    def prune(self, rows, flags):
        """
        Drop rows with undefined curves, then drop the (site, species) pairs
        whose remaining cohorts no longer pass the replication rule

        Returns
        -------
        rows : list
            Surviving rows.
        failures : list
            Failure records for the dropped rows.

        """
        cfg = self.config
        failures = []
        defined = []
        for row in rows:
            if row.curve.defined:
                defined.append(row)
            else:
                failures.append(Failure(row.site, row.species, row.cohort,
                                        'K-curve undefined at some radius'))

        surviving = {}
        for row in defined:
            surviving.setdefault((row.site, row.species), set()).add(
                row.cohort)
        if not surviving:
            return [], failures

        units = list(surviving)
        counts = flags.loc[units, list(cfg.labels)].copy()
        for (unit, cohorts) in surviving.items():
            for cohort in cfg.labels[:-1]:
                if cohort not in cohorts:
                    counts.loc[unit, cohort] = 0
        ok = qualifies(counts, labels=cfg.labels,
                       min_interior=cfg.min_interior)
        ok = {unit: bool(ok.loc[unit]) for unit in units}

        kept = []
        for row in defined:
            if ok[row.site, row.species]:
                kept.append(row)
            else:
                failures.append(Failure(row.site, row.species, row.cohort,
                                        'too few cohorts left after pruning'))
        return kept, failures

    def assemble(self, track, stems, mapper=map):
        """
        Assemble the analysis table of a track

        Parameters
        ----------
        track : str {'univariate', 'bivariate'}
            Track to assemble.
        stems : DataFrame
            Stem table as returned from `cohorts.assign_cohorts`.
        mapper : callable, optional
            Map-like callable used to dispatch the work units, such as the
            builtin `map` (default) or the `map` method of an executor from
            `concurrent.futures`.

        Returns
        -------
        AnalysisTable
            Pruned table. The bivariate table also has the configured outlier
            pairs removed. An EmptyAnalysisError is raised if no row survives.

        """
        flags = self.flags(stems)
        units = self.units(track, stems, flags=flags)
        logger.info(f"Assembling the {track} table from {len(units)} "
                    f"site/species units")

        rows, failures = [], []
        for (unit_rows, unit_failures) in mapper(
                partial(_analyze_unit, self, track), units):
            rows.extend(unit_rows)
            failures.extend(unit_failures)

        rows, pruned = self.prune(rows, flags)
        table = AnalysisTable(rows, track, failures=failures + pruned,
                              constants=self.config.constants())
        if track == 'bivariate' and self.config.outliers:
            table = table.exclude(self.config.outliers)

        logger.info(f"{track.capitalize()} table: {len(table)} rows, "
                    f"{len(table.failures)} failures")
        if not len(table):
            raise EmptyAnalysisError("no {} analysis rows survived filtering "
                                     "({} failures)"
                                     .format(track, len(table.failures)))
        return table

    def univariate(self, stems, mapper=map):
        """
        Assemble the univariate table, see `AnalysisTableAssembler.assemble`

        """
        return self.assemble('univariate', stems, mapper=mapper)

    def bivariate(self, stems, mapper=map):
        """
        Assemble the bivariate table, see `AnalysisTableAssembler.assemble`

        """
        return self.assemble('bivariate', stems, mapper=mapper)
