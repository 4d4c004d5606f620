import re

import pytest

from grammar_tables import (
    END_MARKER,
    ActionType,
    AlgorithmType,
    ParseAction,
    ParsingTable,
    Production,
    build_ll1_table,
    build_lr_collection,
    merge_actions,
    parse_grammar,
)

E_TO_T = Production('E', ('T',), 1)
T_TO_F = Production('T', ('F',), 3)


def test_action_rendering():
    assert str(ParseAction.shift(3)) == 's3'
    assert str(ParseAction.reduce(E_TO_T)) == 'r(E -> T)'
    assert str(ParseAction.goto(4)) == '4'
    assert str(ParseAction.accept()) == 'acc'
    assert str(ParseAction.predict(E_TO_T)) == 'E -> T'
    conflict = ParseAction.conflict([ParseAction.shift(3), ParseAction.reduce(E_TO_T)])
    assert str(conflict) == 's3/r(E -> T)'


def test_conflict_needs_two_alternatives():
    with pytest.raises(ValueError):
        ParseAction.conflict([ParseAction.shift(1)])


def test_merge_equal_action_is_noop():
    action = ParseAction.shift(2)
    assert merge_actions(None, action) is action
    assert merge_actions(action, ParseAction.shift(2)) is action


def test_merge_puts_shift_first():
    merged = merge_actions(ParseAction.reduce(E_TO_T), ParseAction.shift(5))
    assert merged.is_conflict
    assert merged.alternatives == (ParseAction.shift(5), ParseAction.reduce(E_TO_T))
    assert merged.primary == ParseAction.shift(5)


def test_merge_appends_third_alternative_in_registration_order():
    merged = merge_actions(ParseAction.reduce(E_TO_T), ParseAction.reduce(T_TO_F))
    merged = merge_actions(merged, ParseAction.accept())
    assert [str(a) for a in merged.alternatives] == ['r(E -> T)', 'r(T -> F)', 'acc']
    assert merge_actions(merged, ParseAction.reduce(T_TO_F)) is merged


def test_table_add_action_and_conflicts():
    table = ParsingTable(AlgorithmType.SLR1, action_headers=('a', END_MARKER))
    table.add_action(0, 'a', ParseAction.shift(1))
    table.add_action(0, 'a', ParseAction.reduce(E_TO_T))
    table.add_action(1, END_MARKER, ParseAction.reduce(E_TO_T))
    table.add_action(1, END_MARKER, ParseAction.reduce(T_TO_F))

    conflicts = table.conflicts()
    assert [(c.state_id, c.symbol, c.conflict_type) for c in conflicts] == [
        (0, 'a', 'shift/reduce'),
        (1, END_MARKER, 'reduce/reduce'),
    ]
    assert conflicts[0].description == 's1 vs r(E -> T)'
    assert table.get(2, 'a') is None


def test_lr0_single_rule_table():
    result = build_lr_collection(parse_grammar("S -> a"), AlgorithmType.LR0)
    table = result.table
    assert table.action_headers == ('a', END_MARKER)
    assert table.goto_headers == ('S',)
    assert str(table.get(0, 'S')) == '1'
    assert str(table.get(0, 'a')) == 's2'
    assert table.get(1, END_MARKER).action_type == ActionType.ACCEPT
    assert str(table.get(2, 'a')) == 'r(S -> a)'
    assert str(table.get(2, END_MARKER)) == 'r(S -> a)'


def test_expression_tables_conflicts(expression_grammar):
    assert build_lr_collection(expression_grammar, AlgorithmType.LR0).table.conflicts()
    assert build_lr_collection(expression_grammar, AlgorithmType.SLR1).table.conflicts() == []
    assert build_lr_collection(expression_grammar, AlgorithmType.LR1).table.conflicts() == []


def test_lr0_expression_conflicts_are_shift_reduce(expression_grammar):
    conflicts = build_lr_collection(expression_grammar, AlgorithmType.LR0).table.conflicts()
    assert {c.conflict_type for c in conflicts} == {'shift/reduce'}
    assert {c.symbol for c in conflicts} == {'*'}


def test_slr_reduces_only_on_follow(expression_grammar):
    result = build_lr_collection(expression_grammar, AlgorithmType.SLR1)
    state = result.states[0].transitions['F']
    row = result.table.rows[state]
    assert set(row) == {'+', '*', ')', END_MARKER}
    assert all(str(action) == 'r(T -> F)' for action in row.values())


def test_lr1_reduce_reduce_conflict():
    result = build_lr_collection(parse_grammar("S -> A | B\nA -> a\nB -> a"), AlgorithmType.LR1)
    conflicts = result.table.conflicts()
    assert len(conflicts) == 1
    assert conflicts[0].conflict_type == 'reduce/reduce'
    assert conflicts[0].symbol == END_MARKER
    assert str(result.table.get(conflicts[0].state_id, END_MARKER)) == 'r(A -> a)/r(B -> a)'


def test_ambiguous_grammar_shift_reduce_cell():
    result = build_lr_collection(parse_grammar("E -> E + E | id"), AlgorithmType.SLR1)
    conflicts = result.table.conflicts()
    assert len(conflicts) == 1
    cell = result.table.get(conflicts[0].state_id, '+')
    assert re.fullmatch(r's\d+/r\(E -> E \+ E\)', str(cell))
    assert cell.primary.action_type == ActionType.SHIFT


def test_lr1_epsilon_reduce():
    result = build_lr_collection(parse_grammar("S -> A b\nA -> a | ε"), AlgorithmType.LR1)
    assert str(result.table.get(0, 'b')) == 'r(A -> ε)'
    assert result.table.conflicts() == []


def test_ll1_table(ll1_expression_grammar):
    table = build_ll1_table(ll1_expression_grammar)
    assert table.action_headers == ('+', '*', '(', ')', 'id', END_MARKER)
    assert table.goto_headers == ()
    assert str(table.get('E', 'id')) == "E -> T E'"
    assert str(table.get('E', '(')) == "E -> T E'"
    assert table.get('E', '+') is None
    assert str(table.get("E'", '+')) == "E' -> + T E'"
    assert str(table.get("E'", ')')) == "E' -> ε"
    assert str(table.get("E'", END_MARKER)) == "E' -> ε"
    assert str(table.get("T'", '+')) == "T' -> ε"
    assert str(table.get('F', 'id')) == 'F -> id'
    assert table.get('E', 'id').action_type == ActionType.PREDICT
    assert table.overwrites == []


def test_ll1_last_write_wins():
    table = build_ll1_table(parse_grammar("S -> a | S"))
    assert str(table.get('S', 'a')) == 'S -> S'
    assert len(table.overwrites) == 1
    overwrite = table.overwrites[0]
    assert (overwrite.non_terminal, overwrite.terminal) == ('S', 'a')
    assert str(overwrite.replaced) == 'S -> a'
    assert table.conflicts() == []


def test_ll1_overwrite_is_logged(caplog):
    with caplog.at_level('WARNING', logger='grammar_tables'):
        build_ll1_table(parse_grammar("S -> a | a b"))
    assert 'last production wins' in caplog.text


def test_table_to_dict(expression_grammar):
    data = build_lr_collection(expression_grammar, AlgorithmType.LR0).table.to_dict()
    assert data['algorithm'] == 'LR(0)'
    assert data['headers'] == ['+', '*', '(', ')', 'id', END_MARKER, 'E', 'T', 'F']
    assert data['rows']['0']['id'] == 's5'
    assert data['conflicts']
    assert all(c['type'] == 'shift/reduce' for c in data['conflicts'])


def test_ll1_aa_grammar_has_no_overwrites(aa_grammar):
    table = build_ll1_table(aa_grammar)
    assert table.overwrites == []
    assert str(table.get('S', 'a')) == 'S -> A A'
    assert str(table.get('A', 'b')) == 'A -> b'
