"""
GraphBuilder — hash-consing low-level operation graph.

Every non-leaf buffer is keyed by ``(op, src1, src2)``. Emitting a key that
already exists returns the existing buffer id, so structurally identical
operations collapse to one buffer (common-subexpression elimination).
Leaf buffers are never deduplicated.
"""

import json
import logging
from dataclasses import dataclass

from . import config
from .errors import ShapeMismatchError, UnknownBufferError
from .ops import is_op, op_arity, op_name
from .shape import Shape

logger = logging.getLogger(__name__)

# Buffer id 0 is never allocated. It marks "unassigned" and fills the unused
# second source of unary ops.
NULL_BUFFER = 0


@dataclass(frozen=True)
class MLOp:
    """Structural identity of an emitted operation (the CSE key)."""
    op: object
    src1: int
    src2: int


@dataclass(frozen=True)
class OpInfo:
    """Materialized record for a non-leaf buffer."""
    op: object
    shape: Shape
    src1: int
    src2: int

    @property
    def sources(self):
        if self.src2 == NULL_BUFFER:
            return (self.src1,)
        return (self.src1, self.src2)


class GraphBuilder:
    """Owns the buffer, instruction and dependency tables of one graph.

    All tables are insertion-ordered dicts, so iteration order (and
    ``export_ir`` output) is a deterministic function of emission order.
    """

    def __init__(self):
        self._maxid = NULL_BUFFER
        self._buffs = {}   # leaf id -> Shape
        self._zeros = set()
        self._nodes = {}   # MLOp -> id
        self._instr = {}   # id -> OpInfo
        self._shapes = {}  # every id -> Shape
        # What buffers consume a given buffer. Low fan-out + cheap producer
        # makes a buffer a candidate for inlining.
        self._deps = {}    # id -> {consumer id: None}
        self.cse_hits = 0

    def _newid(self):
        self._maxid += 1
        return self._maxid

    def _check_source(self, bid):
        if bid not in self._shapes:
            raise UnknownBufferError(f'buffer {bid} was not produced by this builder')

    # --- Emission ---

    def allocate_buffer(self, shape, zero=False):
        """Allocate a fresh leaf buffer. Never deduplicated."""
        shape = Shape.of(shape)
        bid = self._newid()
        self._buffs[bid] = shape
        self._shapes[bid] = shape
        self._deps.setdefault(bid, {})
        if zero:
            self._zeros.add(bid)
        logger.debug('alloc %d %r%s', bid, shape, ' (zero)' if zero else '')
        return bid

    def emit(self, op, shape, src1, src2=NULL_BUFFER):
        """Emit ``op`` over ``src1``/``src2`` and return its output buffer id."""
        if not is_op(op):
            raise TypeError(f'not an op: {op!r}')
        shape = Shape.of(shape)
        if op_arity(op) == 2:
            if src2 == NULL_BUFFER:
                raise ValueError(f'{op_name(op)} needs two sources')
        elif src2 != NULL_BUFFER:
            raise ValueError(f'{op_name(op)} takes one source, got src2={src2}')
        self._check_source(src1)
        if src2 != NULL_BUFFER:
            self._check_source(src2)

        key = MLOp(op, src1, src2)
        outid = self._nodes.get(key)
        if outid is not None:
            self.cse_hits += 1
            known = self._shapes[outid]
            if known != shape and config.STRICT_SHAPES:
                raise ShapeMismatchError(f'{op_name(op)}({src1}, {src2})', known, shape)
            logger.debug('cse %s(%d, %d) -> %d', op_name(op), src1, src2, outid)
        else:
            outid = self._newid()
            self._nodes[key] = outid
            self._shapes[outid] = shape
            self._instr[outid] = OpInfo(op, shape, src1, src2)
            self._deps.setdefault(outid, {})
            logger.debug('emit %d = %s(%d, %d) %r', outid, op_name(op), src1, src2, shape)

        self._deps[src1][outid] = None
        if src2 != NULL_BUFFER:
            self._deps[src2][outid] = None
        return outid

    # --- Queries ---

    @property
    def buffers(self):
        return dict(self._buffs)

    @property
    def zero_buffers(self):
        return frozenset(self._zeros)

    @property
    def instructions(self):
        return dict(self._instr)

    @property
    def nodes(self):
        return dict(self._nodes)

    @property
    def deps(self):
        return {bid: tuple(users) for bid, users in self._deps.items()}

    @property
    def num_buffers(self):
        return len(self._buffs)

    @property
    def num_instructions(self):
        return len(self._instr)

    def shape_of(self, bid):
        self._check_source(bid)
        return self._shapes[bid]

    def consumers(self, bid):
        self._check_source(bid)
        return tuple(self._deps[bid])

    def is_leaf(self, bid):
        self._check_source(bid)
        return bid in self._buffs

    def schedule(self):
        """Instructions in emission order (a topological order)."""
        return list(self._instr.items())

    # --- Export ---

    def to_dict(self):
        """JSON-compatible snapshot of every table."""
        return {
            'buffers': [
                {'id': bid, 'shape': list(shp), 'zero': bid in self._zeros}
                for bid, shp in self._buffs.items()
            ],
            'instructions': [
                {'id': bid, 'op': op_name(info.op), 'shape': list(info.shape),
                 'src': list(info.sources)}
                for bid, info in self._instr.items()
            ],
            'deps': {str(bid): list(users) for bid, users in self._deps.items() if users},
        }

    def export_ir(self):
        """Serialize the tables as UTF-8 JSON bytes for a lowering pass."""
        return json.dumps(self.to_dict(), separators=(',', ':')).encode('utf-8')

    def __repr__(self):
        return (f'GraphBuilder(buffers={self.num_buffers}, '
                f'instructions={self.num_instructions}, cse_hits={self.cse_hits})')
