"""Exception types raised while building, evaluating or differentiating graphs."""


class LazygradError(Exception):
    """Base class for lazygrad errors."""


class KindMismatchError(LazygradError, TypeError):
    """A typed downcast was attempted against the wrong node kind."""

    def __init__(self, actual, expected):
        super().__init__(f'Downcasting from: {actual.name}, to: {expected.name}')
        self.actual = actual
        self.expected = expected


class ShapeMismatchError(LazygradError, ValueError):
    """Two shapes that must agree do not."""

    def __init__(self, what, a, b):
        super().__init__(f'{what}: shape mismatch {a} vs {b}')
        self.a = a
        self.b = b


class ArenaMismatchError(LazygradError, ValueError):
    """Handles from different arenas were combined."""


class UnknownBufferError(LazygradError, KeyError):
    """A buffer id that the builder never produced was referenced."""

    def __str__(self):
        return str(self.args[0]) if self.args else ''


class CycleError(LazygradError, RuntimeError):
    """A node was re-entered while its own evaluation was in progress."""


class GradientDisabledError(LazygradError, RuntimeError):
    """backward() was requested on a context that does not track gradients."""


class UnsupportedOpError(LazygradError, NotImplementedError):
    """The operation exists in the vocabulary but has no rule here."""
