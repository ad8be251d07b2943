#!/usr/bin/env python
"""Benchmark: graph construction, evaluation and backward for stacked Affine+ReLU.

Measures how long it takes to lower a forward pass and its gradients into a
GraphBuilder, and how much of the gradient graph CSE collapses.
"""

import os
import sys
import time
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'py'))

from lazygrad import EvalContext, Shape, use_arena
from lazygrad.nn import Affine, Sequential, get_parameters, input_like, relu

# ── Configuration ──────────────────────────────────────────────────────

CONFIGS = [
    {'name': 'tiny',   'depth': 4,   'iters': 200},
    {'name': 'small',  'depth': 16,  'iters': 50},
    {'name': 'medium', 'depth': 64,  'iters': 10},
    {'name': 'large',  'depth': 128, 'iters': 3},
]

SHAPE = Shape(32, 32)


def run_config(cfg):
    times = []
    for _ in range(cfg['iters']):
        with use_arena() as arena:
            t0 = time.perf_counter()
            layers = []
            for _ in range(cfg['depth']):
                layers.extend([Affine(SHAPE), relu])
            net = Sequential(*layers)
            y = net(input_like(SHAPE))

            ctx = EvalContext()
            ctx.eval(y)
            grads = ctx.backward(y, wrt=get_parameters(net))
            for g in grads.values():
                ctx.eval(g)
            times.append(time.perf_counter() - t0)

    bld = ctx.builder
    avg_ms = sum(times) / len(times) * 1000
    print(f"{cfg['name']:>8}  depth={cfg['depth']:<4} nodes={len(arena):<6} "
          f"buffers={bld.num_buffers:<5} instr={bld.num_instructions:<6} "
          f"cse_hits={bld.cse_hits:<5} {avg_ms:8.2f} ms/iter")


def main():
    for cfg in CONFIGS:
        run_config(cfg)


if __name__ == '__main__':
    main()
