"""Tests for the numpy host backend."""

import numpy as np
import pytest

from lazygrad import Device, EvalContext, GraphBuilder, NumpyBackend, OpType, Shape, param, zero
from lazygrad.errors import ShapeMismatchError


class TestNumpyBackend:
    def test_upload_download(self):
        buf = NumpyBackend().alloc(Shape(2, 3))
        data = np.arange(6, dtype=np.float32).reshape(2, 3)
        buf.upload(data)
        out = buf.download()
        np.testing.assert_array_equal(out, data)
        out[0, 0] = 99
        assert buf.download()[0, 0] == 0

    def test_upload_shape_mismatch(self):
        buf = NumpyBackend().alloc(Shape(3))
        with pytest.raises(ShapeMismatchError):
            buf.upload([1.0, 2.0])

    def test_scalar(self):
        buf = NumpyBackend().alloc(Shape())
        buf.upload(np.float32(2.5))
        assert float(buf.download()) == pytest.approx(2.5)

    def test_bind_leaves_only(self):
        bld = GraphBuilder()
        a = bld.allocate_buffer(Shape(2))
        z = bld.allocate_buffer(Shape(2), zero=True)
        bld.emit(OpType.ADD, Shape(2), a, z)
        bound = NumpyBackend().bind(bld)
        assert set(bound) == {a, z}
        np.testing.assert_array_equal(bound[z].download(), np.zeros(2))

    def test_bind_context(self):
        x = param(Shape(2))
        y = x * x + zero(Shape(2))
        ctx = EvalContext()
        ctx.eval(y)
        bound = NumpyBackend().bind(ctx.builder)
        assert len(bound) == 2
        assert all(b.backend.device == Device.DEFAULT for b in bound.values())
