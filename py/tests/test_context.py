"""Tests for EvalContext forward evaluation and memoization."""

import pytest

from lazygrad import EvalContext, GraphBuilder, OpType, Shape, param, use_arena, zero
from lazygrad.errors import ArenaMismatchError, CycleError


S = Shape(1)


class CountingContext(EvalContext):
    def __init__(self, **kw):
        super().__init__(**kw)
        self.entered = []
        self.exited = []

    def enter(self, eid):
        super().enter(eid)
        self.entered.append(eid)

    def exit(self, eid):
        super().exit(eid)
        self.exited.append(eid)


def _ops(builder):
    return [info.op for info in builder.instructions.values()]


class TestMemoization:
    def test_shared_leaf_evaluated_once(self):
        x = param(S)
        y = x * x
        ctx = CountingContext()
        ctx.eval(y)
        assert ctx.builder.num_buffers == 1
        assert len(ctx.entered) == 2
        assert ctx.entered == sorted(set(ctx.entered))

    def test_hooks_bracket_evaluation(self):
        x = param(S)
        y = -x
        ctx = CountingContext()
        ctx.eval(y)
        # children first, each node exited before the next is entered
        assert ctx.entered == [ctx.eval_id(x), ctx.eval_id(y)]
        assert ctx.exited == ctx.entered

    def test_reeval_hits_cache(self):
        x = param(S)
        y = x.exp()
        ctx = CountingContext()
        first = ctx.eval(y)
        n_enter = len(ctx.entered)
        assert y.eval(ctx) == first
        assert len(ctx.entered) == n_enter
        assert ctx.builder.cse_hits == 0

    def test_eval_ids_start_at_one(self):
        x = param(S)
        ctx = EvalContext()
        assert ctx.eval_id(x) == 0
        ctx.eval(x)
        assert ctx.eval_id(x) == 1

    def test_values_table(self):
        x = param(S)
        ctx = EvalContext()
        bid = ctx.eval(x)
        assert ctx.values == {x.index: bid}


class TestDeepGraphs:
    def test_long_chain_evaluates(self):
        x = param(S)
        y = x
        for _ in range(5000):
            y = y + x
        ctx = EvalContext()
        out = ctx.eval(y)
        assert ctx.builder.num_buffers == 1
        assert ctx.builder.num_instructions == 5000
        assert ctx.eval_id(y) == 5001
        assert ctx._active == set()
        assert ctx.eval(y) == out

    def test_long_chain_gradient_evaluates(self):
        x = param(S)
        y = x
        for _ in range(3000):
            y = (y * x).exp()
        ctx = EvalContext()
        ctx.eval(y)
        ctx.backward(y, seed=param(S))
        g = ctx.grad(x)
        ctx.eval(g)
        assert g.index in ctx.values

    def test_partially_cached_chain(self):
        x = param(S)
        mid = x
        for _ in range(2000):
            mid = -mid
        y = mid
        for _ in range(2000):
            y = y.exp()
        ctx = CountingContext()
        ctx.eval(mid)
        n = len(ctx.entered)
        ctx.eval(y)
        # only the nodes above mid are entered again
        assert len(ctx.entered) == n + 2000
        assert ctx.builder.num_instructions == 4000


class TestEndToEnd:
    def test_affine(self):
        x, w, b = param(S, name='x'), param(S, name='w'), param(S, name='b')
        f = x * w + b
        ctx = EvalContext()
        out = ctx.eval(f)

        assert ctx.builder.num_buffers == 3
        assert _ops(ctx.builder) == [OpType.MUL, OpType.ADD]
        info = ctx.builder.instructions[out]
        assert info.op is OpType.ADD
        assert info.src2 == ctx.values[b.index]

        assert ctx.eval(f) == out
        assert ctx.builder.num_buffers == 3
        assert ctx.builder.num_instructions == 2

    def test_structural_duplicates_collapse(self):
        x, y = param(S), param(S)
        a = x + y
        b = x + y
        assert not a.same(b)
        ctx = EvalContext()
        out = ctx.eval(a * b)
        assert ctx.eval(a) == ctx.eval(b)
        assert _ops(ctx.builder) == [OpType.ADD, OpType.MUL]
        assert ctx.builder.cse_hits == 1
        info = ctx.builder.instructions[out]
        assert info.src1 == info.src2

    def test_unary_ops_emitted(self):
        x = param(S)
        y = (-x).reciprocal().exp().log().gtz()
        ctx = EvalContext()
        ctx.eval(y)
        assert _ops(ctx.builder) == [OpType.NEG, OpType.REC, OpType.EXP, OpType.LOG, OpType.GTZ]

    def test_zero_leaf_marked(self):
        z = zero(S)
        ctx = EvalContext()
        bid = ctx.eval(z)
        assert bid in ctx.builder.zero_buffers

    def test_shared_builder(self):
        bld = GraphBuilder()
        x = param(S)
        EvalContext(builder=bld).eval(x.exp())
        assert EvalContext(builder=bld).emitter is bld
        assert bld.num_instructions == 1


class TestContextScope:
    def test_new_context_reassigns(self):
        x, w = param(S), param(S)
        f = x * w
        ctx1 = EvalContext()
        ctx1.eval(f)
        ctx2 = EvalContext()
        ctx2.eval(f)
        assert ctx2.eval_id(x) == 1
        assert ctx2.eval_id(f) == 3
        assert ctx2.builder is not ctx1.builder
        assert ctx2.builder.num_buffers == 2
        assert ctx1.builder.num_buffers == 2

    def test_reset(self):
        x = param(S)
        ctx = EvalContext()
        ctx.eval(x.exp())
        old = ctx.builder
        ctx.reset()
        assert ctx.builder is not old
        assert ctx.values == {}
        ctx.eval(x.exp())
        assert ctx.builder.num_instructions == 1

    def test_arena_binding(self):
        x = param(S)
        ctx = EvalContext()
        ctx.eval(x)
        with use_arena():
            y = param(S)
        with pytest.raises(ArenaMismatchError):
            ctx.eval(y)

    def test_eval_requires_expr(self):
        with pytest.raises(TypeError):
            EvalContext().eval(3)

    def test_reentry_detected(self):
        ctx = EvalContext()
        ctx.enter(5)
        with pytest.raises(CycleError):
            ctx.enter(5)
        ctx.exit(5)
        ctx.enter(5)

    def test_failed_evaluation_leaves_no_active_node(self, monkeypatch):
        x = param(S)
        ctx = EvalContext()

        def boom(*args, **kw):
            raise RuntimeError('backend gone')

        monkeypatch.setattr(ctx.builder, 'allocate_buffer', boom)
        with pytest.raises(RuntimeError):
            ctx.eval(x)
        assert ctx._active == set()
