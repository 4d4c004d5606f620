import pytest

from grammar_tables import (
    END_MARKER,
    AlgorithmType,
    LRItem,
    LRItemEngine,
    Production,
    build_lr_collection,
    compute_first_follow,
    parse_grammar,
)


def _engine(grammar, algorithm):
    return LRItemEngine(grammar, compute_first_follow(grammar), algorithm)


def test_item_rendering():
    item = LRItem('E', ('E', '+', 'T'), 1)
    assert str(item) == 'E -> E . + T'
    assert str(item.advance().advance().advance()) == 'E -> E + T .'
    assert str(LRItem('S', ('a',), 0, '$')) == '[S -> . a, $]'


def test_item_identity_ignores_production_index():
    assert LRItem('A', ('a',), 0, None, 1) == LRItem('A', ('a',), 0, None, 7)
    assert LRItem('A', ('a',), 0, 'a') != LRItem('A', ('a',), 0, 'b')


def test_epsilon_item_is_complete():
    item = LRItem.start_of(Production('A', ('ε',), 2))
    assert item.rhs == ()
    assert item.is_complete()
    assert item.next_symbol() is None


def test_engine_rejects_ll1(expression_grammar):
    with pytest.raises(ValueError):
        _engine(expression_grammar, AlgorithmType.LL1)


def test_lr0_closure_of_start(expression_grammar):
    engine = _engine(expression_grammar, AlgorithmType.LR0)
    start = LRItem.start_of(expression_grammar.augmented_production())
    closure = engine.closure([start])
    assert [str(item) for item in closure] == [
        "E' -> . E",
        'E -> . E + T',
        'E -> . T',
        'T -> . T * F',
        'T -> . F',
        'F -> . ( E )',
        'F -> . id',
    ]
    assert all(item.lookahead is None for item in closure)


def test_lr1_closure_propagates_lookaheads(aa_grammar):
    engine = _engine(aa_grammar, AlgorithmType.LR1)
    start = LRItem.start_of(aa_grammar.augmented_production(), END_MARKER)
    closure = engine.closure([start])
    assert [str(item) for item in closure] == [
        "[S' -> . S, $]",
        '[S -> . A A, $]',
        '[A -> . a A, a]',
        '[A -> . a A, b]',
        '[A -> . b, a]',
        '[A -> . b, b]',
    ]


def test_lr1_lookahead_through_nullable_suffix():
    grammar = parse_grammar("S -> A B\nA -> a\nB -> b | ε")
    engine = _engine(grammar, AlgorithmType.LR1)
    closure = engine.closure([LRItem.start_of(grammar.augmented_production(), END_MARKER)])
    lookaheads = {item.lookahead for item in closure if item.lhs == 'A'}
    assert lookaheads == {'b', END_MARKER}


def test_closure_is_idempotent(expression_grammar):
    engine = _engine(expression_grammar, AlgorithmType.SLR1)
    once = engine.closure([LRItem.start_of(expression_grammar.augmented_production())])
    assert engine.closure(once) == once


def test_goto(expression_grammar):
    engine = _engine(expression_grammar, AlgorithmType.LR0)
    state0 = engine.closure([LRItem.start_of(expression_grammar.augmented_production())])
    assert [str(item) for item in engine.goto(state0, 'E')] == ["E' -> E .", 'E -> E . + T']
    assert engine.goto(state0, '+') == ()
    assert engine.goto(state0, 'missing') == ()


def test_collection_state_counts(expression_grammar):
    ff = compute_first_follow(expression_grammar)
    assert len(build_lr_collection(expression_grammar, AlgorithmType.LR0, ff).states) == 12
    assert len(build_lr_collection(expression_grammar, AlgorithmType.SLR1, ff).states) == 12
    assert len(build_lr_collection(expression_grammar, AlgorithmType.LR1, ff).states) == 22


def test_transitions_follow_first_encountered_order(expression_grammar):
    result = build_lr_collection(expression_grammar, AlgorithmType.LR0)
    assert result.states[0].transitions == {'E': 1, 'T': 2, 'F': 3, '(': 4, 'id': 5}
    assert str(result.augmented_production) == "E' -> E"


def test_states_are_unique_and_transitions_are_closed(expression_grammar):
    result = build_lr_collection(expression_grammar, 'LR(1)')
    item_sets = [state.item_set() for state in result.states]
    assert len(set(item_sets)) == len(item_sets)
    for state in result.states:
        for target in state.transitions.values():
            assert 0 <= target < len(result.states)


def test_single_production_collection():
    result = build_lr_collection(parse_grammar("S -> a"), AlgorithmType.LR0)
    assert [str(state.items[0]) for state in result.states] == ["S' -> . S", "S' -> S .", 'S -> a .']
    assert [str(item) for item in result.states[0].items] == ["S' -> . S", 'S -> . a']
    assert [len(state.items) for state in result.states] == [2, 1, 1]
    assert result.states[0].transitions == {'S': 1, 'a': 2}


def test_epsilon_never_becomes_a_transition():
    result = build_lr_collection(parse_grammar("S -> A b\nA -> a | ε"), AlgorithmType.LR1)
    for state in result.states:
        assert 'ε' not in state.transitions


def test_collection_history(expression_grammar):
    history = build_lr_collection(expression_grammar, AlgorithmType.LR0).history
    assert history[0].description == "Initialized State 0 (Closure of E' -> .E)"
    assert len(history[0].data) == 1
    assert history[1].description == 'Processing State 0'
    assert history[1].active_state_id == 0
    assert history[-1].description == 'Canonical Collection construction complete.'
    assert len(history[-1].data) == 12

    created = next(s for s in history if s.description.startswith('Created New State 1'))
    assert created.active_symbol == 'E'
    assert created.target_state_id == 1

    linked = [s for s in history if 'Existing State' in s.description]
    assert linked
    assert all(s.target_state_id is not None for s in linked)


def test_history_snapshots_do_not_change_later(expression_grammar):
    history = build_lr_collection(expression_grammar, AlgorithmType.SLR1).history
    # State 0 has no transitions yet when it is first recorded
    assert history[0].data[0].transitions == {}
    sizes = [len(s.data) for s in history]
    assert sizes == sorted(sizes)
