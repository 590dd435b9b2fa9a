"""
Backend utility modules.
"""
from utils.converters import (
    dict_to_strategy,
    strategy_to_dict,
    result_to_dict,
    individual_to_dict,
    message_to_dict,
)

__all__ = [
    'dict_to_strategy',
    'strategy_to_dict',
    'result_to_dict',
    'individual_to_dict',
    'message_to_dict',
]
