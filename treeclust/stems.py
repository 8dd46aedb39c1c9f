#!/usr/bin/env python

"""File: stems.py
Module to check cleaned stem tables and to separate exactly coincident stems
before they are turned into point patterns.

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

from .errors import StemTableError

logger = logging.getLogger(__name__)

STEM_COLUMNS = ('site', 'species', 'tag', 'dbh', 'sapling', 'x', 'y')
DUPLICATE_KEY = ['site', 'x', 'y', 'species', 'sapling']


def check_stems(stems):
    """
    Check that a stem table has the expected columns and unique stem tags

    Parameters
    ----------
    stems : DataFrame
        Stem table with at least the columns in `STEM_COLUMNS`.

    Returns
    -------
    DataFrame
        Copy of `stems` with `dbh`, `x` and `y` as floats and `sapling` as
        booleans.

    """
    missing = [col for col in STEM_COLUMNS if col not in stems.columns]
    if missing:
        raise StemTableError("stem table lacks the column(s) {}"
                             .format(missing))

    dupes = stems.duplicated(['site', 'tag'])
    if dupes.any():
        raise StemTableError("stem tags are not unique within sites: {}"
                             .format(stems.loc[dupes, 'tag'].tolist()[:10]))

    stems = stems.copy()
    stems['dbh'] = stems['dbh'].astype(numpy.float64)
    stems['x'] = stems['x'].astype(numpy.float64)
    stems['y'] = stems['y'].astype(numpy.float64)
    stems['sapling'] = stems['sapling'].astype(bool)

    unlocated = stems[['x', 'y']].isna().any(axis=1)
    if unlocated.any():
        logger.warning(f"Dropping {unlocated.sum()} stems without "
                       f"coordinates")
        stems = stems.loc[~unlocated]
    return stems


def jitter_duplicates(stems, scale=0.01, seed=None):
    """
    Displace stems that share site, coordinates, species and life stage with
    an earlier stem

    This is done once on the cleaned table, before cohort assignment, so that
    conspecific point patterns never contain exactly coincident points.

    Parameters
    ----------
    stems : DataFrame
        Stem table.
    scale : scalar, optional
        Each coordinate of a duplicate is shifted by a uniform draw from
        [-scale, scale].
    seed : int, optional
        Seed for the random number generator, for reproducible jitter.

    Returns
    -------
    DataFrame
        Copy of `stems` with jittered duplicates.

    """
    stems = stems.copy()
    dupes = stems.duplicated(DUPLICATE_KEY, keep='first').to_numpy()
    ndupes = dupes.sum()
    if ndupes:
        logger.info(f"Jittering {ndupes} duplicated stem locations")
        rng = numpy.random.default_rng(seed)
        shift = rng.uniform(low=-scale, high=scale, size=(ndupes, 2))
        stems.loc[dupes, 'x'] = stems.loc[dupes, 'x'] + shift[:, 0]
        stems.loc[dupes, 'y'] = stems.loc[dupes, 'y'] + shift[:, 1]
    return stems
