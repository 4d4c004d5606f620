import pytest

from grammar_tables import SAMPLE_GRAMMARS, compute_first_follow, parse_grammar

EXPRESSION_LL1 = """E -> T E'
E' -> + T E' | ε
T -> F T'
T' -> * F T' | ε
F -> ( E ) | id"""


@pytest.fixture
def expression_grammar():
    return parse_grammar(SAMPLE_GRAMMARS['expression'])


@pytest.fixture
def aa_grammar():
    return parse_grammar(SAMPLE_GRAMMARS['S -> A A'])


@pytest.fixture
def ll1_expression_grammar():
    return parse_grammar(EXPRESSION_LL1)


@pytest.fixture
def expression_first_follow(expression_grammar):
    return compute_first_follow(expression_grammar)
