"""Shape — opaque, hashable tensor dimensions."""

import operator


def _dim(d, dims):
    # any integer type, e.g. numpy.int64 from an ndarray's shape
    if isinstance(d, bool):
        raise ValueError(f'invalid dimension {d!r} in shape {dims}')
    try:
        d = operator.index(d)
    except TypeError:
        raise ValueError(f'invalid dimension {d!r} in shape {dims}') from None
    if d < 0:
        raise ValueError(f'invalid dimension {d!r} in shape {dims}')
    return d


class Shape(tuple):
    """Immutable tuple of dimensions.

    The graph core only compares and hashes shapes. ``numel`` and ``ndim``
    exist for backends that have to allocate storage.
    """

    def __new__(cls, *dims):
        return super().__new__(cls, (_dim(d, dims) for d in dims))

    @classmethod
    def of(cls, x):
        """Coerce an int, a sequence of ints or a Shape to a Shape."""
        if isinstance(x, Shape):
            return x
        if hasattr(x, '__index__'):
            return cls(x)
        return cls(*x)

    @property
    def ndim(self):
        return len(self)

    def numel(self):
        n = 1
        for d in self:
            n *= d
        return n

    def __repr__(self):
        return f"Shape({', '.join(str(d) for d in self)})"
