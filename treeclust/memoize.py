#!/usr/bin/env python

"""File: memoize.py
Module providing a memoize decorator for instance methods of the immutable
geometric objects in this package (windows and point patterns)

Adapted from
http://code.activestate.com/recipes/577452-a-memoize-decorator-for-instance-methods/  # noqa

"""
# Copyright (c) 2012 Daniel Miller
# Copyright (c) 2015 Daniel Wennberg
#
# Permission is hereby granted, free of charge, to any person obtaining
# a copy of this software and associated documentation files (the
# "Software"), to deal in the Software without restriction, including
# without limitation the rights to use, copy, modify, merge, publish,
# distribute, sublicense, and/or sell copies of the Software, and to permit
# persons to whom the Software is furnished to do so, subject to the
# following conditions:
#
# The above copyright notice and this permission notice shall be included
# in all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS
# OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF
# MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN
# NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM,
# DAMAGES OR OTHER LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR
# OTHERWISE, ARISING FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE
# USE OR OTHER DEALINGS IN THE SOFTWARE.

from functools import partial, update_wrapper
from inspect import signature


class memoize_method(object):
    """Cache the return value of a method

    The return value of a decorated method is cached on the instance whose
    method was invoked, keyed by the method name and the bound arguments. All
    arguments must be hashable; if they are not, the result is computed as
    usual but not cached.

    Invoking a memoized method directly on its class bypasses the cache.

    Since the objects using this decorator are immutable once initialized, the
    cache never has to be invalidated. It is stored in an ordinary instance
    attribute, so it travels with the instance when pickled.

    Parameters
    ----------
    f : method
        Method to memoize.

    Examples
    --------
    >>> class Disc(object):
    >>>     def __init__(self, radius):
    >>>         self.radius = radius
    >>>     @memoize_method
    >>>     def scaled_area(self, factor=1.0):
    >>>         return 3.14159 * (factor * self.radius) ** 2
    >>>
    >>> disc = Disc(2.0)
    >>> disc.scaled_area(2.0)  # computed and cached
    50.26544
    >>> disc.scaled_area(factor=2.0)  # same bound arguments, read from cache
    50.26544

    """

    cache_name = '_memoize_method_cache'

    def __init__(self, f):
        self._f = f
        self._signature = signature(f)
        update_wrapper(self, f)

    def __get__(self, obj, otype=None):
        if obj is None:
            return self._f
        return partial(self, obj)

    def __call__(self, obj, *args, **kwargs):
        f = self._f
        bound = self._signature.bind(obj, *args, **kwargs)
        bound.apply_defaults()
        callargs = dict(bound.arguments)

        # The first parameter is the instance itself
        callargs.pop(next(iter(self._signature.parameters)))

        # Atomic, so that threads sharing an instance agree on one cache
        cache = vars(obj).setdefault(self.cache_name, {})

        try:
            key = (f.__name__, _HashableDict(callargs))
            res = cache[key]
        except KeyError:
            cache[key] = res = f(obj, *args, **kwargs)
        except TypeError:
            res = f(obj, *args, **kwargs)
        return res


class _HashableDict(dict):
    """
    A dict that hashes by its items, to be used as a cache key. Never mutated
    after construction.

    """

    def __hash__(self):
        return hash(frozenset(self.items()))
