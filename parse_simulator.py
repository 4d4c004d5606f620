"""
Parse Simulator - Table-Driven LL(1) and LR Parsing Engines

Consumes a finished parsing table and a token sequence, simulates the
stack machine step by step, and records a trace with stack, input, action
and parse tree (LL) or parse forest (LR) snapshots for replay.
Runtime failures never raise: they end the trace with an error status.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from enum import Enum
import copy
import itertools
import logging

from grammar_tables import (
    END_MARKER,
    EPSILON,
    ActionType,
    AlgorithmType,
    Grammar,
    ParsingTable,
)

LOGGER = logging.getLogger(__name__)


@dataclass
class SimulationConfig:
    """Configuration options for parse simulation."""
    max_steps: int = 1000  # Safety fuse against non-terminating traces
    end_marker: str = END_MARKER


class ParseStatus(Enum):
    """Final outcome of a simulation run."""
    ACCEPTED = "accepted"
    TERMINAL_MISMATCH = "terminal_mismatch"
    NO_TABLE_ENTRY = "no_table_entry"
    NO_TRANSITION = "no_transition"
    GOTO_ERROR = "goto_error"
    INVALID_ACTION = "invalid_action"
    STACK_UNDERFLOW = "stack_underflow"
    STEP_LIMIT = "step_limit"


@dataclass
class ParseTreeNode:
    """Represents a node in the parse tree."""
    node_id: str
    label: str
    children: List['ParseTreeNode'] = field(default_factory=list)

    def __str__(self) -> str:
        return self.label

    def leaves(self) -> List[str]:
        """Labels of the leaves, left to right."""
        if not self.children:
            return [self.label]
        return [label for child in self.children for label in child.leaves()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.node_id,
            'label': self.label,
            'children': [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class ParseStep:
    """Represents a single step in the parsing trace."""
    step_number: int
    stack: Tuple[str, ...]  # LL: symbol stack; LR: state stack
    input_buffer: Tuple[str, ...]  # Remaining input, '$' included
    action: str
    symbols: Tuple[str, ...] = ()  # LR symbol stack
    trees: Tuple[ParseTreeNode, ...] = ()  # LL: the single tree; LR: the forest on the stack

    def __str__(self) -> str:
        return f"Step {self.step_number}: Stack=[{' '.join(self.stack)}] " \
               f"Input=[{' '.join(self.input_buffer)}] Action={self.action}"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'step': self.step_number,
            'stack': list(self.stack),
            'input': list(self.input_buffer),
            'action': self.action,
            'trees': [tree.to_dict() for tree in self.trees],
        }
        if self.symbols:
            data['symbols'] = list(self.symbols)
        return data


@dataclass(frozen=True)
class ParseResult:
    """Represents the result of a parsing simulation."""
    algorithm: AlgorithmType
    status: ParseStatus
    trace: Tuple[ParseStep, ...]
    parse_tree: Optional[ParseTreeNode] = None

    @property
    def success(self) -> bool:
        return self.status == ParseStatus.ACCEPTED

    @property
    def error_message(self) -> str:
        return "" if self.success else self.trace[-1].action

    @property
    def remaining_input(self) -> Tuple[str, ...]:
        return self.trace[-1].input_buffer

    def __str__(self) -> str:
        if self.success:
            return f"Parse successful. Tree: {self.parse_tree}"
        return f"Parse failed: {self.error_message} after {len(self.trace) - 1} step(s)"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'algorithm': self.algorithm.value,
            'success': self.success,
            'status': self.status.value,
            'error': self.error_message or None,
            'parse_tree': self.parse_tree.to_dict() if self.parse_tree else None,
            'trace': [step.to_dict() for step in self.trace],
        }


def tokenize(tokens: Union[str, Iterable[str]]) -> List[str]:
    """Split a whitespace-separated token string; token lists are copied as is."""
    if isinstance(tokens, str):
        return tokens.split()
    return [str(token) for token in tokens]


class _NodeFactory:
    """Creates parse tree nodes with sequential ids for one run."""

    def __init__(self):
        self._ids = itertools.count()

    def __call__(self, label: str) -> ParseTreeNode:
        return ParseTreeNode(node_id=f"node-{next(self._ids)}", label=label)


class LL1ParsingEngine:
    """
    Stack-based predictive parser driven by an LL(1) table.

    The stack is seeded with ``[$, S]``. A terminal on top must match the
    input; a non-terminal on top is expanded with ``M[top, input]`` and its
    right-hand side pushed in reverse, growing the parse tree under the
    popped node.
    """

    def __init__(self, grammar: Grammar, table: ParsingTable, config: Optional[SimulationConfig] = None):
        self.grammar = grammar
        self.table = table
        self.config = config or SimulationConfig()

    def parse(self, tokens: Union[str, Iterable[str]]) -> ParseResult:
        end = self.config.end_marker
        input_buffer = tokenize(tokens) + [end]
        new_node = _NodeFactory()

        root = new_node(self.grammar.start_symbol)
        # Stack items: (symbol, tree node); '$' has no node
        stack: List[Tuple[str, Optional[ParseTreeNode]]] = [(end, None), (self.grammar.start_symbol, root)]
        ip = 0
        trace: List[ParseStep] = []

        def record(action: str):
            trace.append(ParseStep(
                step_number=len(trace),
                stack=tuple(symbol for symbol, _ in stack),
                input_buffer=tuple(input_buffer[ip:]),
                action=action,
                trees=(copy.deepcopy(root),),
            ))

        record('Start')
        status = None
        steps = 0
        while status is None:
            if steps >= self.config.max_steps:
                status = ParseStatus.STEP_LIMIT
                record('Error: Step limit reached')
                break

            top, node = stack[-1]
            current = input_buffer[ip] if ip < len(input_buffer) else end

            if top == end and ip == len(input_buffer) - 1:
                status = ParseStatus.ACCEPTED
                action = 'ACCEPT'
            elif top == end:
                # A '$' token inside the input never matches the bottom marker
                status = ParseStatus.TERMINAL_MISMATCH
                action = 'Error: Terminal Mismatch'
            elif not self.grammar.is_non_terminal(top):
                if top == current:
                    action = f"Match {top}"
                    stack.pop()
                    ip += 1
                else:
                    status = ParseStatus.TERMINAL_MISMATCH
                    action = 'Error: Terminal Mismatch'
            else:
                entry = self.table.get(top, current)
                production = entry.primary.production if entry is not None else None
                if entry is None:
                    status = ParseStatus.NO_TABLE_ENTRY
                    action = 'Error: No entry in table'
                elif production is None or production.lhs != top:
                    status = ParseStatus.INVALID_ACTION
                    action = f"Error: Invalid table entry {entry}"
                else:
                    action = f"Output {production}"
                    stack.pop()
                    if production.is_epsilon:
                        node.children = [new_node(EPSILON)]
                    else:
                        children = [new_node(symbol) for symbol in production.body]
                        node.children = children
                        for symbol, child in reversed(list(zip(production.body, children))):
                            stack.append((symbol, child))

            record(action)
            steps += 1

        LOGGER.debug("LL(1) simulation finished with %s after %d step(s)", status.value, steps)
        return ParseResult(
            algorithm=AlgorithmType.LL1,
            status=status,
            trace=tuple(trace),
            parse_tree=copy.deepcopy(root) if status == ParseStatus.ACCEPTED else None,
        )


class LRParsingEngine:
    """
    Shift-reduce parser driven by an LR(0), SLR(1) or LR(1) table.

    Keeps a state stack, a symbol stack and a parallel node stack for the
    parse forest. Conflict cells are resolved with their primary action.
    """

    def __init__(self, grammar: Grammar, table: ParsingTable, config: Optional[SimulationConfig] = None):
        self.grammar = grammar
        self.table = table
        self.config = config or SimulationConfig()

    def parse(self, tokens: Union[str, Iterable[str]]) -> ParseResult:
        end = self.config.end_marker
        input_buffer = tokenize(tokens) + [end]
        new_node = _NodeFactory()

        state_stack: List[int] = [0]
        symbol_stack: List[str] = [end]
        node_stack: List[Optional[ParseTreeNode]] = [None]  # None marks the bottom
        ip = 0
        trace: List[ParseStep] = []

        def record(action: str):
            trace.append(ParseStep(
                step_number=len(trace),
                stack=tuple(str(state) for state in state_stack),
                input_buffer=tuple(input_buffer[ip:]),
                action=action,
                symbols=tuple(symbol_stack),
                trees=copy.deepcopy(tuple(node for node in node_stack if node is not None)),
            ))

        record('Start')
        status = None
        steps = 0
        while status is None:
            if steps >= self.config.max_steps:
                status = ParseStatus.STEP_LIMIT
                record('Error: Step limit reached')
                break

            current = input_buffer[ip] if ip < len(input_buffer) else end
            cell = self.table.get(state_stack[-1], current)

            if cell is None:
                status = ParseStatus.NO_TRANSITION
                action_desc = 'Error: No transition'
            else:
                action = cell.primary
                if action.action_type == ActionType.SHIFT:
                    action_desc = f"Shift {current} to {action.state}"
                    state_stack.append(action.state)
                    symbol_stack.append(current)
                    node_stack.append(new_node(current))
                    ip += 1
                elif action.action_type == ActionType.REDUCE:
                    action_desc, status = self._reduce(action.production, state_stack, symbol_stack,
                                                       node_stack, new_node)
                elif action.action_type == ActionType.ACCEPT:
                    if ip == len(input_buffer) - 1:
                        status = ParseStatus.ACCEPTED
                        action_desc = 'ACCEPT'
                    else:
                        status = ParseStatus.NO_TRANSITION
                        action_desc = 'Error: No transition'
                else:
                    status = ParseStatus.INVALID_ACTION
                    action_desc = 'Error: Invalid action on terminal'

            record(action_desc)
            steps += 1

        LOGGER.debug("%s simulation finished with %s after %d step(s)",
                     self.table.algorithm.value, status.value, steps)
        parse_tree = None
        if status == ParseStatus.ACCEPTED and node_stack[-1] is not None:
            parse_tree = copy.deepcopy(node_stack[-1])
        return ParseResult(
            algorithm=self.table.algorithm,
            status=status,
            trace=tuple(trace),
            parse_tree=parse_tree,
        )

    def _reduce(self, production, state_stack: List[int], symbol_stack: List[str],
                node_stack: List[Optional[ParseTreeNode]], new_node) -> Tuple[str, Optional[ParseStatus]]:
        """Pop the handle, push the goto state; returns (action description, error status or None)."""
        action_desc = f"Reduce {production}"
        rhs_length = len(production.body)
        if rhs_length > len(state_stack) - 1:
            return f"{action_desc} (Error: stack underflow)", ParseStatus.STACK_UNDERFLOW

        if rhs_length:
            children = [node for node in node_stack[-rhs_length:] if node is not None]
            del state_stack[-rhs_length:]
            del symbol_stack[-rhs_length:]
            del node_stack[-rhs_length:]
        else:
            children = [new_node(EPSILON)]

        goto = self.table.get(state_stack[-1], production.lhs)
        if goto is None or goto.primary.action_type != ActionType.GOTO:
            return f"{action_desc} (Error during goto)", ParseStatus.GOTO_ERROR

        state_stack.append(goto.primary.state)
        symbol_stack.append(production.lhs)
        parent = new_node(production.lhs)
        parent.children = children
        node_stack.append(parent)
        return action_desc, None


def simulate(grammar: Grammar, table: ParsingTable, tokens: Union[str, Iterable[str]],
             config: Optional[SimulationConfig] = None) -> ParseResult:
    """Run the engine matching ``table.algorithm``."""
    if table.algorithm == AlgorithmType.LL1:
        return LL1ParsingEngine(grammar, table, config).parse(tokens)
    return LRParsingEngine(grammar, table, config).parse(tokens)
