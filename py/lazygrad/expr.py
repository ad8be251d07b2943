"""
Expression DAG — lazy tensor expressions with a closed set of node kinds.

Nodes live in an append-only ``Arena``. An ``Expr`` is a handle made of the
arena and the node's index, so copying a handle copies an int and every
copy shares the same memoized results inside an ``EvalContext``. A node can
only reference nodes that already exist, which means every child index is
smaller than its parent's and cycles cannot be built.
"""

import enum
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from .errors import ArenaMismatchError, KindMismatchError, ShapeMismatchError
from .shape import Shape


class Kind(enum.Enum):
    PARAM = 'Param'
    ZERO = 'Zero'
    ADD = 'Add'
    MUL = 'Mul'
    NEG = 'Neg'   # y = -x
    REC = 'Rec'   # y = 1/x
    EXP = 'Exp'   # y = e^x
    LOG = 'Log'   # y = ln(x)
    GTZ = 'Gtz'   # y = x > 0


LEAF_KINDS = frozenset({Kind.PARAM, Kind.ZERO})
UNARY_KINDS = frozenset({Kind.NEG, Kind.REC, Kind.EXP, Kind.LOG, Kind.GTZ})
BINARY_KINDS = frozenset({Kind.ADD, Kind.MUL})


def arity(kind):
    if kind in LEAF_KINDS:
        return 0
    if kind in UNARY_KINDS:
        return 1
    return 2


@dataclass(frozen=True)
class Node:
    kind: Kind
    shape: Shape
    children: tuple = ()
    name: Optional[str] = None


class Arena:
    """Append-only node storage. Indices are stable for the arena's lifetime."""

    def __init__(self):
        self._nodes = []

    def __len__(self):
        return len(self._nodes)

    def __getitem__(self, index):
        return self._nodes[index]

    def add(self, kind, shape, children=(), name=None):
        """Append a node and return its index."""
        children = tuple(children)
        if len(children) != arity(kind):
            raise ValueError(f'{kind.name} takes {arity(kind)} children, got {len(children)}')
        n = len(self._nodes)
        for c in children:
            if not 0 <= c < n:
                raise ValueError(f'child index {c} does not refer to an existing node')
        self._nodes.append(Node(kind, Shape.of(shape), children, name))
        return n

    def param(self, shape, name=None):
        return Expr(self, self.add(Kind.PARAM, shape, name=name))

    def zero(self, shape):
        return Expr(self, self.add(Kind.ZERO, shape))

    def __repr__(self):
        return f'Arena(nodes={len(self._nodes)})'


_default_arena = Arena()


def default_arena():
    return _default_arena


@contextmanager
def use_arena(arena=None):
    """Temporarily build new leaves in ``arena`` (a fresh one by default).

        with use_arena() as a:
            x = param(Shape(4))
    """
    global _default_arena
    prev = _default_arena
    try:
        _default_arena = arena if arena is not None else Arena()
        yield _default_arena
    finally:
        _default_arena = prev


def param(shape, name=None):
    """A Parameter leaf in the current default arena."""
    return _default_arena.param(shape, name=name)


def zero(shape):
    """A Zero leaf, used for branches that contribute no gradient."""
    return _default_arena.zero(shape)


class Visitor:
    """Callbacks for ``Expr.accept``. Override what you need."""

    def visit_param(self, expr):
        pass

    def visit_zero(self, expr):
        pass

    def visit_op(self, expr):
        pass


class _ParamCollector(Visitor):
    def __init__(self):
        self.params = []

    def visit_param(self, expr):
        self.params.append(expr)


class Expr:
    """Handle to one node of the expression DAG.

    Equality and hashing are by storage identity (arena + index), never by
    structure. Structural deduplication happens in the GraphBuilder.
    """

    __slots__ = ('_arena', '_index')

    def __init__(self, arena, index):
        self._arena = arena
        self._index = index

    # --- Properties ---

    @property
    def arena(self):
        return self._arena

    @property
    def index(self):
        return self._index

    @property
    def node(self):
        return self._arena[self._index]

    @property
    def kind(self):
        return self.node.kind

    @property
    def shape(self):
        return self.node.shape

    @property
    def name(self):
        return self.node.name

    @property
    def children(self):
        return tuple(Expr(self._arena, c) for c in self.node.children)

    def same(self, other):
        return isinstance(other, Expr) and self._arena is other._arena and self._index == other._index

    def __eq__(self, other):
        return self.same(other)

    def __hash__(self):
        return hash((id(self._arena), self._index))

    def expect(self, kind):
        """Typed downcast: return self if it is a ``kind`` node, else raise."""
        if self.kind is not kind:
            raise KindMismatchError(self.kind, kind)
        return self

    # --- Construction ---

    def _ensure_expr(self, other):
        if not isinstance(other, Expr):
            raise TypeError(f'Cannot combine Expr with {type(other).__name__}')
        if other._arena is not self._arena:
            raise ArenaMismatchError('operands belong to different arenas')
        return other

    def _unop(self, kind):
        return Expr(self._arena, self._arena.add(kind, self.shape, (self._index,)))

    def _binop(self, other, kind):
        other = self._ensure_expr(other)
        if self.shape != other.shape:
            raise ShapeMismatchError(kind.name, self.shape, other.shape)
        # Output shape is the left operand's; broadcasting is left to backends.
        idx = self._arena.add(kind, self.shape, (self._index, other._index))
        return Expr(self._arena, idx)

    def __add__(self, other):
        return self._binop(other, Kind.ADD)

    def __sub__(self, other):
        return self + -self._ensure_expr(other)

    def __mul__(self, other):
        return self._binop(other, Kind.MUL)

    def __truediv__(self, other):
        return self * self._ensure_expr(other).reciprocal()

    def __neg__(self):
        return self._unop(Kind.NEG)

    def reciprocal(self):
        return self._unop(Kind.REC)

    def exp(self):
        return self._unop(Kind.EXP)

    def log(self):
        return self._unop(Kind.LOG)

    def gtz(self):
        """Step function: 1 where x > 0, else 0."""
        return self._unop(Kind.GTZ)

    # --- Traversal ---

    def toposort(self):
        """Indices of every node reachable from self, children first."""
        seen = {self._index}
        stack = [self._index]
        while stack:
            for c in self._arena[stack.pop()].children:
                if c not in seen:
                    seen.add(c)
                    stack.append(c)
        # A child's index is always below its parent's, so ascending order
        # is a topological order.
        return sorted(seen)

    def accept(self, visitor):
        """Visit every reachable node once, children before parents."""
        for idx in self.toposort():
            e = Expr(self._arena, idx)
            kind = self._arena[idx].kind
            if kind is Kind.PARAM:
                visitor.visit_param(e)
            elif kind is Kind.ZERO:
                visitor.visit_zero(e)
            else:
                visitor.visit_op(e)

    def parameters(self):
        v = _ParamCollector()
        self.accept(v)
        return v.params

    # --- Evaluation ---

    def eval(self, ctx):
        return ctx.eval(self)

    def backward(self, ctx, seed=None, wrt=None):
        return ctx.backward(self, seed=seed, wrt=wrt)

    def __repr__(self):
        node = self.node
        label = f' {node.name!r}' if node.name else ''
        return f'Expr({node.kind.value}{label}, {node.shape!r}, #{self._index})'
