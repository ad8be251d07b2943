"""ops — vocabulary of the low-level operation graph.

Elementwise and reduction ops are plain ``OpType`` members. Shape ops carry
parameters and are frozen dataclasses, so every op is hashable and can be
part of an operation key.
"""

import enum
from dataclasses import dataclass


class OpType(enum.Enum):
    # Binary ops
    ADD = 'ADD'
    MUL = 'MUL'
    POW = 'POW'
    EQ = 'EQ'

    # Unary ops
    NEG = 'NEG'
    REC = 'REC'
    EXP = 'EXP'
    LOG = 'LOG'
    GTZ = 'GTZ'

    # Matrix ops
    MATMUL = 'MATMUL'

    # Reduce ops
    MAX = 'MAX'
    SUM = 'SUM'


class PadKind(enum.Enum):
    ZERO = 'ZERO'      # pad with zeroes
    ONE = 'ONE'        # pad with ones
    MIRROR = 'MIRROR'  # mirror from the buffer
    EDGE = 'EDGE'      # keep the edge value


@dataclass(frozen=True)
class Broadcast:
    axis: int
    count: int


@dataclass(frozen=True)
class Cat:
    axis: int


@dataclass(frozen=True)
class Flip:
    axis: int


@dataclass(frozen=True)
class Permute:
    axes: tuple

    def __post_init__(self):
        object.__setattr__(self, 'axes', tuple(self.axes))


@dataclass(frozen=True)
class Pad:
    axis: int
    amt: int
    kind: PadKind = PadKind.ZERO


SHAPE_OPS = (Broadcast, Cat, Flip, Permute, Pad)

BINARY_OPS = frozenset({OpType.ADD, OpType.MUL, OpType.POW, OpType.EQ, OpType.MATMUL})
UNARY_OPS = frozenset({OpType.NEG, OpType.REC, OpType.EXP, OpType.LOG, OpType.GTZ})
REDUCE_OPS = frozenset({OpType.MAX, OpType.SUM})


def op_arity(op):
    """Number of source buffers ``op`` reads: 1 or 2."""
    if op in BINARY_OPS or isinstance(op, Cat):
        return 2
    if op in UNARY_OPS or op in REDUCE_OPS or isinstance(op, SHAPE_OPS):
        return 1
    raise TypeError(f'not an op: {op!r}')


def is_op(op):
    return isinstance(op, OpType) or isinstance(op, SHAPE_OPS)


def op_name(op):
    """Stable display/serialisation name, e.g. ``ADD`` or ``PERMUTE(1,0)``."""
    if isinstance(op, OpType):
        return op.value
    if isinstance(op, Broadcast):
        return f'BROADCAST(axis={op.axis},count={op.count})'
    if isinstance(op, Cat):
        return f'CAT(axis={op.axis})'
    if isinstance(op, Flip):
        return f'FLIP(axis={op.axis})'
    if isinstance(op, Permute):
        return f"PERMUTE({','.join(str(a) for a in op.axes)})"
    if isinstance(op, Pad):
        return f'PAD(axis={op.axis},amt={op.amt},kind={op.kind.value})'
    raise TypeError(f'not an op: {op!r}')
