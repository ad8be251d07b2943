"""
EvalContext — per-traversal state for evaluating and differentiating Exprs.

A context owns one GraphBuilder, an id counter and side tables keyed by
node index (eval ids, buffer ids, gradients). Evaluating a node a second
time under the same context returns the cached buffer id without touching
the builder. A fresh context starts from empty tables, so reusing a handle
there re-evaluates it under a new id.
"""

import logging

from . import config
from .builder import GraphBuilder
from .errors import (
    ArenaMismatchError, CycleError, GradientDisabledError, ShapeMismatchError,
    UnsupportedOpError,
)
from .expr import Expr, Kind
from .ops import OpType

logger = logging.getLogger(__name__)

_FORWARD_OPS = {
    Kind.ADD: OpType.ADD,
    Kind.MUL: OpType.MUL,
    Kind.NEG: OpType.NEG,
    Kind.REC: OpType.REC,
    Kind.EXP: OpType.EXP,
    Kind.LOG: OpType.LOG,
    Kind.GTZ: OpType.GTZ,
}


def local_gradients(expr, grad):
    """Reverse-mode rule of one node.

    Returns ``(child, thunk)`` pairs. Each thunk builds the gradient with
    respect to that child from ``grad``, the gradient with respect to
    ``expr``. Nothing is built until a thunk is called.
    """
    kind = expr.kind
    if kind is Kind.ADD:
        l, r = expr.children
        return ((l, lambda: grad), (r, lambda: grad))
    if kind is Kind.MUL:
        l, r = expr.children
        return ((l, lambda: grad * r), (r, lambda: grad * l))
    if kind in (Kind.PARAM, Kind.ZERO):
        return ()
    (x,) = expr.children
    if kind is Kind.NEG:
        return ((x, lambda: -grad),)
    if kind is Kind.REC:
        # d(1/x) = -1/x^2 = -y*y, reusing the forward node
        return ((x, lambda: -grad * expr * expr),)
    if kind is Kind.EXP:
        return ((x, lambda: grad * expr),)
    if kind is Kind.LOG:
        return ((x, lambda: grad / x),)
    if kind is Kind.GTZ:
        # zero almost everywhere; the subgradient is discarded
        return ((x, lambda: x.arena.zero(x.shape)),)
    raise UnsupportedOpError(f'no gradient rule for {kind.name}')


def accumulate(contribs):
    """Sum gradient contributions, skipping Zero leaves unless all are Zero."""
    nonzero = [g for g in contribs if g.kind is not Kind.ZERO]
    if not nonzero:
        return contribs[0]
    total = nonzero[0]
    for g in nonzero[1:]:
        total = total + g
    return total


class EvalContext:
    """Owns id generation and one GraphBuilder for a single traversal.

    Not thread-safe: one context is used by one caller at a time.
    """

    def __init__(self, builder=None, requires_grad=True):
        self.builder = builder if builder is not None else GraphBuilder()
        self.requires_grad = requires_grad
        self._arena = None
        self._maxid = 0
        self._ids = {}     # node index -> eval id
        self._values = {}  # node index -> buffer id
        self._grads = {}   # node index -> gradient Expr
        self._active = set()

    # --- Hooks ---

    def mkid(self):
        """Make a new unique id for an expression node. 0 means unassigned."""
        self._maxid += 1
        return self._maxid

    def enter(self, eid):
        if eid in self._active:
            raise CycleError(f'node {eid} re-entered during its own evaluation')
        self._active.add(eid)
        if config.DEBUG >= 2:
            logger.debug('enter %d', eid)

    def exit(self, eid):
        self._active.discard(eid)
        if config.DEBUG >= 2:
            logger.debug('exit %d', eid)

    @property
    def emitter(self):
        return self.builder

    def _bind(self, expr):
        if not isinstance(expr, Expr):
            raise TypeError(f'expected Expr, got {type(expr).__name__}')
        if self._arena is None:
            self._arena = expr.arena
        elif expr.arena is not self._arena:
            raise ArenaMismatchError('context is bound to a different arena')

    # --- Forward ---

    def eval(self, expr):
        """Evaluate ``expr`` into the builder and return its buffer id.

        Nodes are evaluated children first from an explicit work list, so
        graph depth is not bounded by the interpreter's stack.
        """
        self._bind(expr)
        out = self._values.get(expr.index)
        if out is not None:
            return out

        arena = expr.arena
        for idx in self._pending(expr):
            eid = self._ids.get(idx)
            if eid is None:
                eid = self._ids[idx] = self.mkid()
            self.enter(eid)
            try:
                out = self._evaluate(arena[idx])
            finally:
                self.exit(eid)
            self._values[idx] = out
        return self._values[expr.index]

    def _pending(self, expr):
        """Uncached nodes reachable from ``expr``, children first."""
        seen = {expr.index}
        stack = [expr.index]
        arena = expr.arena
        while stack:
            for c in arena[stack.pop()].children:
                if c not in seen and c not in self._values:
                    seen.add(c)
                    stack.append(c)
        # child indices are always below their parent's
        return sorted(seen)

    def _evaluate(self, node):
        if node.kind is Kind.PARAM:
            return self.builder.allocate_buffer(node.shape)
        if node.kind is Kind.ZERO:
            return self.builder.allocate_buffer(node.shape, zero=True)
        op = _FORWARD_OPS.get(node.kind)
        if op is None:
            raise UnsupportedOpError(f'no forward rule for {node.kind.name}')
        srcs = [self._values[c] for c in node.children]
        return self.builder.emit(op, node.shape, *srcs)

    def eval_id(self, expr):
        """Eval id assigned to ``expr`` in this context, or 0 if none yet."""
        self._bind(expr)
        return self._ids.get(expr.index, 0)

    @property
    def values(self):
        return dict(self._values)

    # --- Backward ---

    def backward(self, output, seed=None, wrt=None):
        """Build gradient expressions of ``output`` w.r.t. its Parameters.

        Two phases: first mark which reachable nodes lead to a Parameter
        (restricted to ``wrt`` when given), then walk in reverse topological
        order, summing each node's pending contributions once before applying
        its local rule. A node whose summed gradient is a Zero forwards that
        Zero to its operands without applying the rule. Every node's gradient
        is summed into the context across passes, Parameters and interior
        nodes alike. Returns ``{param: gradient}``.
        """
        if not self.requires_grad:
            raise GradientDisabledError('gradient tracking is disabled for this context')
        self._bind(output)
        arena = output.arena
        if seed is None:
            seed = arena.param(output.shape, name='grad')
        else:
            self._bind(seed)
            if seed.shape != output.shape:
                raise ShapeMismatchError('backward seed', seed.shape, output.shape)

        targets = None
        if wrt is not None:
            targets = set()
            for p in wrt:
                self._bind(p)
                targets.add(p.expect(Kind.PARAM).index)

        order = output.toposort()
        live = set()
        for idx in order:
            node = arena[idx]
            if node.kind is Kind.PARAM:
                if targets is None or idx in targets:
                    live.add(idx)
            elif any(c in live for c in node.children):
                live.add(idx)

        result = {}
        pending = {output.index: [seed]}
        for idx in reversed(order):
            contribs = pending.pop(idx, None)
            if contribs is None or idx not in live:
                continue
            grad = accumulate(contribs)
            expr = Expr(arena, idx)
            prev = self._grads.get(idx)
            self._grads[idx] = grad if prev is None else accumulate([prev, grad])
            if expr.kind is Kind.PARAM:
                result[expr] = self._grads[idx]
                continue
            if grad.kind is Kind.ZERO:
                # operands share the node's shape, so the Zero passes through as is
                for c in arena[idx].children:
                    if c in live:
                        pending.setdefault(c, []).append(grad)
                continue
            for child, thunk in local_gradients(expr, grad):
                if child.index in live:
                    pending.setdefault(child.index, []).append(thunk())

        logger.debug('backward from #%d: %d live nodes, %d parameters',
                     output.index, len(live), len(result))
        return result

    def grad(self, p):
        """Accumulated gradient of Parameter ``p``, or None."""
        self._bind(p)
        return self._grads.get(p.expect(Kind.PARAM).index)

    def grad_of(self, expr):
        """Gradient that reached any node, summed over every backward pass."""
        self._bind(expr)
        return self._grads.get(expr.index)

    def gradients(self):
        return {
            Expr(self._arena, idx): g for idx, g in self._grads.items()
            if self._arena[idx].kind is Kind.PARAM
        }

    def reset(self):
        """Drop every table and start over with a fresh builder."""
        self.builder = GraphBuilder()
        self._arena = None
        self._maxid = 0
        self._ids.clear()
        self._values.clear()
        self._grads.clear()
        self._active.clear()

    def __repr__(self):
        return (f'EvalContext(evaluated={len(self._values)}, '
                f'requires_grad={self.requires_grad}, builder={self.builder!r})')
