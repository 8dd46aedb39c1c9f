#!/usr/bin/env python

"""File: cohorts.py
Module to bin stems into ordered size cohorts, pick out the stems that count
as adults, and decide which species are replicated well enough to be
analyzed at each site.

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
import numpy
import pandas

from .config import (COHORT_BREAKS, COHORT_LABELS, SAPLING_DBH,
                     MEDIAN_DBH_CAP, MIN_INTERIOR)

logger = logging.getLogger(__name__)

UNIT = ['site', 'species']


def assign_cohorts(stems, breaks=COHORT_BREAKS, labels=COHORT_LABELS,
                   sapling_dbh=SAPLING_DBH, median_cap=MEDIAN_DBH_CAP):
    """
    Assign each stem to a size cohort, and flag the stems usable as adults

    Sapling-stage stems get the nominal diameter `sapling_dbh`. Stems are then
    binned into the right-closed intervals defined by `breaks`. Within the
    last (reference) cohort, the median diameter is computed per site and
    species and capped at `median_cap`; stems with a diameter below this
    cutoff keep the reference label but are not flagged as adults.

    Parameters
    ----------
    stems : DataFrame
        Stem table with the columns 'site', 'species', 'dbh' and 'sapling'.
    breaks : sequence, optional
        Increasing diameter breakpoints.
    labels : sequence, optional
        Cohort names, one per interval.
    sapling_dbh : scalar, optional
        Diameter assigned to saplings.
    median_cap : scalar or dict, optional
        Ceiling for the adult cutoff, either global or per site.

    Returns
    -------
    DataFrame
        Copy of `stems` with the columns 'cohort' (ordered categorical) and
        'is_adult' (bool) added. Stems that fall outside all intervals are
        dropped.

    """
    stems = stems.copy()
    saplings = stems['sapling'].astype(bool)
    stems['dbh'] = stems['dbh'].astype(numpy.float64).mask(saplings,
                                                           sapling_dbh)
    stems['cohort'] = pandas.cut(stems['dbh'], bins=list(breaks),
                                 labels=list(labels), right=True,
                                 include_lowest=True, ordered=True)

    unbinned = stems['cohort'].isna()
    if unbinned.any():
        logger.warning(f"Dropping {unbinned.sum()} stems with diameters "
                       f"outside [{breaks[0]}, {breaks[-1]}]")
        stems = stems.loc[~unbinned].copy()

    reference = labels[-1]
    cutoffs = adult_cutoffs(stems, reference, median_cap=median_cap)
    if cutoffs.empty:
        stem_cutoffs = numpy.full(len(stems), numpy.nan)
    else:
        unit_index = pandas.MultiIndex.from_frame(stems[UNIT])
        stem_cutoffs = cutoffs.reindex(unit_index).to_numpy()
    stems['is_adult'] = ((stems['cohort'] == reference).to_numpy() &
                         (stems['dbh'].to_numpy() >= stem_cutoffs))
    return stems


def adult_cutoffs(stems, reference, median_cap=MEDIAN_DBH_CAP):
    """
    Compute the capped median diameter of reference-cohort stems per site and
    species

    Parameters
    ----------
    stems : DataFrame
        Stem table with a 'cohort' column.
    reference : str
        Label of the reference cohort.
    median_cap : scalar or dict, optional
        Ceiling for the cutoff, either global or as a mapping from site to
        ceiling. Sites missing from the mapping fall back to `MEDIAN_DBH_CAP`.

    Returns
    -------
    Series
        Cutoff diameters indexed by (site, species).

    """
    ref = stems.loc[stems['cohort'] == reference]
    medians = ref.groupby(UNIT, sort=False)['dbh'].median()

    if isinstance(median_cap, dict):
        sites = medians.index.get_level_values('site')
        unknown = set(sites) - set(median_cap)
        if unknown:
            logger.warning(f"No median diameter cap for site(s) "
                           f"{sorted(map(str, unknown))}, using "
                           f"{MEDIAN_DBH_CAP}")
        caps = numpy.array([median_cap.get(site, MEDIAN_DBH_CAP)
                            for site in sites], dtype=numpy.float64)
    else:
        caps = median_cap

    return pandas.Series(numpy.minimum(medians.to_numpy(), caps),
                         index=medians.index, name='cutoff')


def cohort_counts(stems, labels=COHORT_LABELS):
    """
    Count stems per site, species and cohort

    The reference cohort column only counts stems flagged as adults.

    Parameters
    ----------
    stems : DataFrame
        Stem table as returned from `assign_cohorts`.
    labels : sequence, optional
        Cohort names.

    Returns
    -------
    DataFrame
        Counts indexed by (site, species), with one column per cohort.

    """
    if 'cohort' not in stems.columns or 'is_adult' not in stems.columns:
        raise ValueError("stems must be passed through assign_cohorts "
                         "before counting cohorts")

    labels = list(labels)
    if stems.empty:
        index = pandas.MultiIndex.from_arrays([[], []], names=UNIT)
        return pandas.DataFrame(0, index=index, columns=labels)

    # Reference-cohort stems below the adult cutoff are counted apart
    subadult = ((stems['cohort'] == labels[-1]).to_numpy() &
                ~stems['is_adult'].to_numpy(dtype=bool))
    cohorts = stems['cohort'].astype(str).mask(subadult, 'subadult')
    counts = stems.groupby(UNIT + [cohorts], sort=True).size()
    counts = counts.unstack(level=-1, fill_value=0)
    counts = counts.reindex(columns=labels, fill_value=0)
    counts.columns.name = None
    return counts.astype(int)


def qualifies(counts, labels=COHORT_LABELS, min_interior=MIN_INTERIOR):
    """
    Apply the replication rule to cohort counts

    A unit qualifies if the smallest cohort has more than one stem, and at
    least `min_interior` of the interior cohorts (all but the smallest and the
    reference cohort) have more than one stem.

    Parameters
    ----------
    counts : DataFrame
        Counts with one column per cohort, like the output of
        `cohort_counts`.
    labels : sequence, optional
        Cohort names.
    min_interior : int, optional
        Minimum number of replicated interior cohorts.

    Returns
    -------
    Series
        Boolean Series with the same index as `counts`.

    """
    labels = list(labels)
    smallest = counts[labels[0]] > 1
    interior = (counts[labels[1:-1]] > 1).sum(axis=1) >= min_interior
    return smallest & interior


def dispersal_species(dispersal):
    """
    Return the species with dispersal-syndrome data

    :dispersal: DataFrame with a 'species' column and one column per disperser
                guild
    :returns: frozenset of species with at least one non-missing guild value

    """
    guilds = dispersal.drop(columns='species')
    present = guilds.notna().any(axis=1)
    return frozenset(dispersal.loc[present, 'species'])


def buffered_adult_counts(stems, registry, radius):
    """
    Count adults per site and species inside the plus-sampling window of
    their site, among the stems of its censused region

    These are the same stems `PointPatternBuilder.adults` builds the adult
    patterns from.

    Sites unknown to the registry keep their plain adult count; the failure to
    find their window is reported when the site is analyzed.

    :returns: dict mapping (site, species) to the number of adults

    """
    adults = stems.loc[stems['is_adult'].astype(bool)]
    counts = {}
    for (site, site_adults) in adults.groupby('site', sort=False):
        if site in registry:
            xy = site_adults[['x', 'y']].to_numpy()
            inside = (registry.buffered_window(site, radius).covers(xy) &
                      registry.census_window(site, radius).covers(xy))
        else:
            logger.warning(f"No window registered for site {site!r}, "
                           f"counting all of its adults")
            inside = numpy.ones(len(site_adults), dtype=bool)
        for (species, n) in site_adults.loc[inside, 'species'].value_counts(
                sort=False).items():
            counts[site, species] = int(n)
    return counts


def replication_flags(stems, dispersal, labels=COHORT_LABELS,
                      min_interior=MIN_INTERIOR, registry=None, radius=None):
    """
    Decide which species qualify for the univariate and bivariate analyses at
    each site

    Parameters
    ----------
    stems : DataFrame
        Stem table as returned from `assign_cohorts`.
    dispersal : DataFrame
        Dispersal-trait table. Species absent from it, or with only missing
        guild values, fail the univariate rule.
    labels : sequence, optional
        Cohort names.
    min_interior : int, optional
        Minimum number of replicated interior cohorts.
    registry : WindowRegistry, optional
        If given, adults are only counted inside the core window of their site
        dilated by `radius`.
    radius : scalar, optional
        Plus-sampling buffer width, required if `registry` is given.

    Returns
    -------
    DataFrame
        Cohort counts indexed by (site, species), with the extra columns
        'buffer_adults', 'dispersal', 'quni' and 'qbi'.

    """
    flags = cohort_counts(stems, labels)
    if registry is None:
        flags['buffer_adults'] = flags[labels[-1]]
    else:
        if radius is None:
            raise ValueError("a buffer radius is needed to count adults in "
                             "the plus-sampling window")
        buffered = buffered_adult_counts(stems, registry, radius)
        flags['buffer_adults'] = [buffered.get(unit, 0)
                                   for unit in flags.index]

    species = flags.index.get_level_values('species')
    flags['dispersal'] = species.isin(list(dispersal_species(dispersal)))
    flags['quni'] = qualifies(flags, labels, min_interior) & flags['dispersal']
    flags['qbi'] = flags['quni'] & (flags['buffer_adults'] > 1)

    logger.info(f"{int(flags['quni'].sum())} of {len(flags)} site/species "
                f"units qualify for the univariate analysis, "
                f"{int(flags['qbi'].sum())} for the bivariate analysis")
    return flags
