"""
Price extraction strategies.

Importing this package registers every built-in strategy with the default
factory.
"""

from strategies.table_strategies import (
    TableStandardStrategy,
    TableSimpleStrategy,
    TableComplexStrategy,
    TableFirstStrategy,
)
from strategies.regex_strategies import (
    RegexStandardStrategy,
    RegexSimpleStrategy,
    RegexAdvancedStrategy,
)

__all__ = [
    'TableStandardStrategy',
    'TableSimpleStrategy',
    'TableComplexStrategy',
    'TableFirstStrategy',
    'RegexStandardStrategy',
    'RegexSimpleStrategy',
    'RegexAdvancedStrategy',
]
