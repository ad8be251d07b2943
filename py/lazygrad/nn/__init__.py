"""nn — Module composition over lazygrad expressions."""

from .modules import Module, Affine, Sequential, forward, input_like, relu
from .state import get_parameters, get_state_dict, load_state_dict

__all__ = [
    'Module', 'Affine', 'Sequential', 'forward', 'input_like', 'relu',
    'get_parameters', 'get_state_dict', 'load_state_dict',
]
