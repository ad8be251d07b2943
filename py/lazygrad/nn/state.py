"""nn.state — parameter collection and weight upload."""

import numpy as np


def _is_param(o):
    from ..expr import Expr, Kind
    return isinstance(o, Expr) and o.kind is Kind.PARAM


def _children(o):
    """Objects reachable from ``o`` for parameter discovery, with name parts."""
    from ..expr import Expr
    if isinstance(o, Expr):
        return [(None, p) for p in o.parameters()]
    if isinstance(o, (list, tuple)):
        return [(str(i), item) for i, item in enumerate(o)]
    if isinstance(o, dict):
        return [(str(k), v) for k, v in o.items()]
    if callable(o) and getattr(o, '__closure__', None):
        # plain functions used as modules capture their parameters in cells
        names = o.__code__.co_freevars
        return [(n, cell.cell_contents) for n, cell in zip(names, o.__closure__)]
    if hasattr(o, '__dict__') and not isinstance(o, type):
        return [(k, v) for k, v in o.__dict__.items() if not k.startswith('_')]
    return []


def get_parameters(obj):
    """Recursively collect all Parameter handles reachable from an object."""
    params = []
    seen = set()
    seen_params = set()

    def _collect(o):
        if _is_param(o):
            if o not in seen_params:
                seen_params.add(o)
                params.append(o)
            return
        oid = id(o)
        if oid in seen:
            return
        seen.add(oid)
        for _, child in _children(o):
            _collect(child)

    _collect(obj)
    return params


def get_state_dict(obj, prefix=''):
    """Get a flat dict of name → Parameter for all directly held parameters."""
    from ..expr import Expr
    state = {}
    seen = set()
    seen_params = set()

    def _collect(o, pfx):
        if isinstance(o, Expr):
            if _is_param(o) and o not in seen_params:
                seen_params.add(o)
                state[pfx or o.name or f'param{o.index}'] = o
            return
        oid = id(o)
        if oid in seen:
            return
        seen.add(oid)
        for part, child in _children(o):
            _collect(child, f'{pfx}.{part}' if pfx else part)

    _collect(obj, prefix)
    return state


def load_state_dict(obj, state_dict, ctx, buffers, strict=True):
    """Upload arrays into the backend buffers of an object's parameters.

    ``buffers`` is the ``{buffer id: Buffer}`` map from ``Backend.bind``;
    each parameter must already have been evaluated under ``ctx``.
    """
    current = get_state_dict(obj)
    for key, val in state_dict.items():
        if key not in current:
            if strict:
                raise KeyError(f'Unexpected key: {key}')
            continue
        bid = ctx.values.get(current[key].index)
        if bid is None:
            raise KeyError(f'parameter {key} has not been evaluated in this context')
        buffers[bid].upload(np.asarray(val, dtype=np.float32))
    if strict:
        missing = set(current) - set(state_dict)
        if missing:
            raise KeyError(f'Missing keys: {sorted(missing)}')
