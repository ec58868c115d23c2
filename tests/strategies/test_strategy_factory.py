import pytest

from extraction.page_classifier import PageClass
from strategies import TableStandardStrategy, RegexAdvancedStrategy
from strategies.core.strategy_context import StrategyContext
from strategies.core.strategy_factory import CLASS_STRATEGY_ORDER, StrategyFactory, create_default_factory
from strategies.core.strategy_interface import BaseStrategy, StrategyResult
from strategies.core.strategy_types import StrategyKind


@pytest.fixture
def factory():
    return create_default_factory()


def test_all_builtin_strategies_registered(factory):
    assert factory.registered_names == [
        'regex_advanced', 'regex_simple', 'regex_standard',
        'table_complex', 'table_first', 'table_simple', 'table_standard',
    ]


@pytest.mark.parametrize("page_class", list(PageClass))
def test_order_per_class(factory, page_class):
    names = [strategy.name for strategy in factory.strategies_for(page_class)]
    assert names == list(CLASS_STRATEGY_ORDER[page_class])


def test_medium_order(factory):
    names = [strategy.name for strategy in factory.strategies_for(PageClass.MEDIUM)]
    assert names == ['table_standard', 'regex_standard', 'table_first']


def test_instances_are_cached(factory):
    assert factory.get_strategy('table_standard') is factory.get_strategy('table_standard')


def test_context_shared(factory):
    context = StrategyContext(simple_row_max_chars=50)
    factory = create_default_factory(context)
    assert factory.get_strategy('table_first').context is context


def test_metadata(factory):
    metadata = factory.get_strategy_metadata('regex_advanced')
    assert metadata.kind is StrategyKind.REGEX
    assert metadata.supports(PageClass.LARGE)
    assert metadata.to_dict()['page_classes'] == ['large']
    assert factory.get_strategy_metadata('missing') is None


def test_names_derived_from_class():
    assert TableStandardStrategy.name == 'table_standard'
    assert RegexAdvancedStrategy.name == 'regex_advanced'
    assert TableStandardStrategy().kind is StrategyKind.TABLE


def test_register_requires_metadata():
    class Undecorated(BaseStrategy):
        def extract(self, document, page_text):
            return StrategyResult()

    with pytest.raises(ValueError):
        StrategyFactory().register_strategy(Undecorated)


def test_unknown_strategy(factory):
    with pytest.raises(ValueError, match="not registered"):
        factory.get_strategy('headless_browser')
