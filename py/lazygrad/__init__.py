"""lazygrad — lazy tensor expressions lowered to a hash-consed operation graph."""

import logging

from . import config

_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())
if config.DEBUG:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter('%(name)s: %(message)s'))
    _logger.addHandler(_handler)
    _logger.setLevel(logging.DEBUG)

from .shape import Shape
from .ops import OpType, PadKind
from .builder import GraphBuilder, MLOp, OpInfo, NULL_BUFFER
from .expr import Arena, Expr, Kind, Visitor, param, zero, use_arena, default_arena
from .context import EvalContext
from .device import Device, Backend, Buffer, NumpyBackend
from .errors import (
    LazygradError, KindMismatchError, ShapeMismatchError, ArenaMismatchError,
    UnknownBufferError, CycleError, GradientDisabledError, UnsupportedOpError,
)

__all__ = [
    'Shape', 'OpType', 'PadKind',
    'GraphBuilder', 'MLOp', 'OpInfo', 'NULL_BUFFER',
    'Arena', 'Expr', 'Kind', 'Visitor', 'param', 'zero', 'use_arena', 'default_arena',
    'EvalContext',
    'Device', 'Backend', 'Buffer', 'NumpyBackend',
    'LazygradError', 'KindMismatchError', 'ShapeMismatchError', 'ArenaMismatchError',
    'UnknownBufferError', 'CycleError', 'GradientDisabledError', 'UnsupportedOpError',
]
__version__ = '0.0.1'
