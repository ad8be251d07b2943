"""Device — buffer/backend collaborator for materializing graph leaves."""

import numpy as np

from .errors import ShapeMismatchError
from .shape import Shape


class Device:
    DEFAULT = "CPU"


class Buffer:
    """Backend-owned storage for one graph buffer."""

    def __init__(self, backend, shape):
        self.backend = backend
        self.shape = Shape.of(shape)

    def upload(self, data):
        raise NotImplementedError

    def download(self):
        raise NotImplementedError


class Backend:
    """Allocates buffers. Every backend must be able to materialize a leaf."""

    device = Device.DEFAULT

    def alloc(self, shape):
        raise NotImplementedError

    def bind(self, builder):
        """Allocate one Buffer per leaf of ``builder``. Returns {id: Buffer}."""
        bound = {}
        zeros = builder.zero_buffers
        for bid, shape in builder.buffers.items():
            buf = self.alloc(shape)
            if bid in zeros:
                buf.upload(np.zeros(tuple(shape), dtype=np.float32))
            bound[bid] = buf
        return bound


class NumpyBuffer(Buffer):
    def __init__(self, backend, shape):
        super().__init__(backend, shape)
        self._data = np.empty(tuple(self.shape), dtype=np.float32)

    def upload(self, data):
        arr = np.asarray(data, dtype=np.float32)
        if arr.shape != tuple(self.shape):
            raise ShapeMismatchError('upload', Shape(*arr.shape), self.shape)
        self._data[...] = arr

    def download(self):
        return self._data.copy()


class NumpyBackend(Backend):
    """Host backend: float32 numpy arrays."""

    def alloc(self, shape):
        return NumpyBuffer(self, shape)
