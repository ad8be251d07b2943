"""nn.modules — function-composition layers over Expr handles."""

from ..expr import param
from ..shape import Shape


class Module:
    """Maps one Expr to another. Subclasses implement ``forward``."""

    def forward(self, x):
        raise NotImplementedError

    def __call__(self, x):
        return self.forward(x)


def forward(module, x):
    """Apply a Module or any unary callable to ``x``."""
    if isinstance(module, Module):
        return module.forward(x)
    return module(x)


def input_like(shape, name='input'):
    """Fresh Parameter used as a module's input placeholder."""
    return param(Shape.of(shape), name=name)


def relu(x):
    return x * x.gtz()


class Affine(Module):
    """y = x * weight + bias"""
    def __init__(self, shape, bias=True):
        shape = Shape.of(shape)
        self.weight = param(shape, name='weight')
        self.bias = param(shape, name='bias') if bias else None

    def forward(self, x):
        y = x * self.weight
        if self.bias is not None:
            y = y + self.bias
        return y


class Sequential(Module):
    """Applies modules left to right."""
    def __init__(self, *layers):
        self.layers = list(layers)

    def forward(self, x):
        for layer in self.layers:
            x = forward(layer, x)
        return x
