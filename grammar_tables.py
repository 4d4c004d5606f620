"""
Grammar Tables - Grammar Analysis and Parsing Table Construction

This module implements the grammar analysis engine behind table-driven parsers:
grammar text processing, FIRST/FOLLOW computation, LR item sets for LR(0),
SLR(1) and LR(1), canonical collections, and LL(1) / LR parsing tables.
Every builder also records a replayable history of its intermediate steps.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple, Union
from enum import Enum
import copy
import logging

LOGGER = logging.getLogger(__name__)

EPSILON = 'ε'
END_MARKER = '$'
EPSILON_ALIASES = ('\\epsilon', '\\varepsilon')

SAMPLE_GRAMMARS: Dict[str, str] = {
    'expression': "E -> E + T | T\nT -> T * F | F\nF -> ( E ) | id",
    'S -> A A': "S -> A A\nA -> a A | b",
    'LR(1) example': "S -> C b B A\nA -> A a b\nA -> a b\nB -> c\nB -> D b\nC -> a\nD -> a",
    'LR(0) example': "S -> A\nS -> B\nA -> a A b\nA -> C\nB -> a B b\nB -> d",
}


class GrammarError(ValueError):
    """Raised when grammar text does not contain a single usable production."""


class AlgorithmType(Enum):
    """Parsing algorithms supported by the table builders."""
    LL1 = 'LL(1)'
    LR0 = 'LR(0)'
    SLR1 = 'SLR(1)'
    LR1 = 'LR(1)'

    @classmethod
    def from_name(cls, name: Union[str, 'AlgorithmType']) -> 'AlgorithmType':
        """Resolve 'LR(1)', 'lr1', 'SLR1', ... to an AlgorithmType."""
        if isinstance(name, cls):
            return name
        wanted = str(name).upper().replace('(', '').replace(')', '').strip()
        for algorithm in cls:
            if algorithm.value.replace('(', '').replace(')', '') == wanted:
                return algorithm
        raise ValueError(f"Unknown algorithm: {name!r}")


LR_ALGORITHMS = (AlgorithmType.LR0, AlgorithmType.SLR1, AlgorithmType.LR1)


def _to_jsonable(value: Any) -> Any:
    """Convert result structures into JSON-ready values with sorted sets."""
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, dict):
        return {str(key): _to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


@dataclass(frozen=True)
class Production:
    """Represents a single production rule in a context-free grammar."""
    lhs: str  # Left-hand side non-terminal
    rhs: Tuple[str, ...]  # Right-hand side symbols as written, ('ε',) for an empty body
    index: int = -1  # Declaration order; -1 marks the augmented start production

    @property
    def body(self) -> Tuple[str, ...]:
        """The symbols this production actually derives (epsilon markers removed)."""
        return tuple(symbol for symbol in self.rhs if symbol != EPSILON)

    @property
    def is_epsilon(self) -> bool:
        return not self.body

    def __str__(self) -> str:
        rhs = ' '.join(self.rhs) if self.rhs else EPSILON
        return f"{self.lhs} -> {rhs}"

    def __deepcopy__(self, memo):
        # immutable
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {'lhs': self.lhs, 'rhs': list(self.rhs), 'index': self.index, 'text': str(self)}


@dataclass(frozen=True)
class Grammar:
    """Represents a context-free grammar."""
    productions: Tuple[Production, ...]
    non_terminals: Tuple[str, ...]  # In first-encounter order
    terminals: Tuple[str, ...]  # In first-encounter order, epsilon and '$' excluded
    start_symbol: str
    skipped_lines: Tuple[Tuple[int, str], ...] = ()  # (line number, text) of ignored lines

    def __str__(self) -> str:
        lines = [f"Start Symbol: {self.start_symbol}"]
        lines.append(f"Terminals: {list(self.terminals)}")
        lines.append(f"Non-terminals: {list(self.non_terminals)}")
        lines.append("Productions:")
        for prod in self.productions:
            lines.append(f"  {prod}")
        return "\n".join(lines)

    def is_non_terminal(self, symbol: str) -> bool:
        return symbol in self.non_terminals

    def is_terminal(self, symbol: str) -> bool:
        return symbol in self.terminals

    def productions_for(self, lhs: str) -> List[Production]:
        """All productions of a non-terminal, in declaration order."""
        return [prod for prod in self.productions if prod.lhs == lhs]

    @property
    def augmented_start(self) -> str:
        """Fresh start symbol S' for the augmented production S' -> S."""
        name = f"{self.start_symbol}'"
        while name in self.non_terminals or name in self.terminals:
            name += "'"
        return name

    def augmented_production(self) -> Production:
        return Production(lhs=self.augmented_start, rhs=(self.start_symbol,), index=-1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'start_symbol': self.start_symbol,
            'non_terminals': list(self.non_terminals),
            'terminals': list(self.terminals),
            'productions': [prod.to_dict() for prod in self.productions],
            'skipped_lines': [{'line': number, 'text': text} for number, text in self.skipped_lines],
        }


class GrammarProcessor:
    """Processes CFG input text and creates Grammar objects."""

    SEPARATOR = '->'

    def parse_grammar(self, cfg_text: str) -> Grammar:
        """
        Parse CFG input text and return a Grammar object.

        One rule per line in the form ``A -> alpha | beta``. The left-hand side
        of the first rule is the start symbol. Lines without exactly one
        ``->``, without a single-word left-hand side, or using the
        end-marker ``$`` are skipped and reported in ``Grammar.skipped_lines``;
        they never raise.

        Raises:
            GrammarError: if no production could be read at all
        """
        productions: List[Production] = []
        non_terminals: Dict[str, None] = {}  # Ordered sets
        rhs_symbols: Dict[str, None] = {}
        skipped: List[Tuple[int, str]] = []

        for line_number, raw_line in enumerate(cfg_text.splitlines(), 1):
            line = raw_line.strip()
            if not line:
                continue

            parts = line.split(self.SEPARATOR)
            lhs = parts[0].strip()
            if len(parts) != 2 or not lhs or len(lhs.split()) != 1:
                LOGGER.warning("Skipping malformed grammar line %d: %r", line_number, line)
                skipped.append((line_number, line))
                continue

            alternatives = [tuple(self._normalize_symbol(s) for s in alternative.split()) or (EPSILON,)
                            for alternative in parts[1].split('|')]
            # The end-marker is reserved for the parse drivers
            if lhs == END_MARKER or any(END_MARKER in symbols for symbols in alternatives):
                LOGGER.warning("Skipping grammar line %d that uses the end-marker %r: %r",
                               line_number, END_MARKER, line)
                skipped.append((line_number, line))
                continue

            non_terminals[lhs] = None
            for symbols in alternatives:
                productions.append(Production(lhs=lhs, rhs=symbols, index=len(productions)))
                for symbol in symbols:
                    if symbol != EPSILON:
                        rhs_symbols[symbol] = None

        if not productions:
            raise GrammarError("Grammar text does not contain any production of the form 'A -> ...'")

        # Terminals are RHS symbols that never appear as a left-hand side
        terminals = tuple(symbol for symbol in rhs_symbols if symbol not in non_terminals)

        grammar = Grammar(
            productions=tuple(productions),
            non_terminals=tuple(non_terminals),
            terminals=terminals,
            start_symbol=productions[0].lhs,
            skipped_lines=tuple(skipped),
        )
        LOGGER.info("Parsed grammar: %d productions, %d non-terminals, %d terminals",
                    len(grammar.productions), len(grammar.non_terminals), len(grammar.terminals))
        return grammar

    @staticmethod
    def _normalize_symbol(symbol: str) -> str:
        return EPSILON if symbol in EPSILON_ALIASES else symbol


def parse_grammar(cfg_text: str) -> Grammar:
    """Shortcut for ``GrammarProcessor().parse_grammar(cfg_text)``."""
    return GrammarProcessor().parse_grammar(cfg_text)


# --- History ---

@dataclass(frozen=True)
class HistorySnapshot:
    """An immutable view of a builder's state at one step, for replay."""
    step_index: int
    description: str
    data: Any  # Deep copy of the builder state at this step
    active_symbol: Optional[str] = None
    active_state_id: Optional[int] = None
    target_state_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'step_index': self.step_index,
            'description': self.description,
            'data': _to_jsonable(self.data),
            'active_symbol': self.active_symbol,
            'active_state_id': self.active_state_id,
            'target_state_id': self.target_state_id,
        }


class HistoryRecorder:
    """Append-only sequence of labeled snapshots."""

    def __init__(self):
        self._snapshots: List[HistorySnapshot] = []

    def record(self, description: str, data: Any,
               active_symbol: Optional[str] = None,
               active_state_id: Optional[int] = None,
               target_state_id: Optional[int] = None) -> HistorySnapshot:
        """Store a deep copy of ``data`` under ``description``."""
        snapshot = HistorySnapshot(
            step_index=len(self._snapshots),
            description=description,
            data=copy.deepcopy(data),
            active_symbol=active_symbol,
            active_state_id=active_state_id,
            target_state_id=target_state_id,
        )
        self._snapshots.append(snapshot)
        return snapshot

    @property
    def snapshots(self) -> Tuple[HistorySnapshot, ...]:
        return tuple(self._snapshots)

    def __len__(self) -> int:
        return len(self._snapshots)


# --- First & Follow ---

def _freeze(sets: Dict[str, Set[str]]) -> Dict[str, FrozenSet[str]]:
    return {key: frozenset(value) for key, value in sets.items()}


@dataclass(frozen=True)
class FirstFollowResult:
    """FIRST and FOLLOW sets of a grammar together with their computation history."""
    first: Dict[str, FrozenSet[str]]
    follow: Dict[str, FrozenSet[str]]
    history: Tuple[HistorySnapshot, ...]
    logs: Tuple[str, ...] = ()

    def first_of_sequence(self, symbols: Sequence[str]) -> Set[str]:
        """
        Compute FIRST(X1 X2 ... Xn).

        Adds FIRST(Xi) - {epsilon} left to right and stops at the first
        non-nullable symbol. Epsilon is included only when every symbol is
        nullable, which holds trivially for the empty sequence.
        """
        result: Set[str] = set()
        for symbol in symbols:
            symbol_first = self.first.get(symbol, frozenset((symbol,)))
            result.update(symbol_first - {EPSILON})
            if EPSILON not in symbol_first:
                return result
        result.add(EPSILON)
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            'first': _to_jsonable(self.first),
            'follow': _to_jsonable(self.follow),
            'logs': list(self.logs),
            'history': [snapshot.to_dict() for snapshot in self.history],
        }


class FirstFollowComputer:
    """Computes FIRST and FOLLOW sets for grammar symbols by fixed-point iteration."""

    def __init__(self, grammar: Grammar):
        self.grammar = grammar

    def compute(self) -> FirstFollowResult:
        grammar = self.grammar
        LOGGER.info("[First/Follow] START: %d productions", len(grammar.productions))

        # All keys are created up front; sets only grow from here on
        first: Dict[str, Set[str]] = {nt: set() for nt in grammar.non_terminals}
        for terminal in grammar.terminals:
            first[terminal] = {terminal}
        first[EPSILON] = {EPSILON}
        follow: Dict[str, Set[str]] = {nt: set() for nt in grammar.non_terminals}
        follow[grammar.start_symbol].add(END_MARKER)

        history = HistoryRecorder()
        logs = ["Initialized sets. Start symbol gets $ in Follow."]

        def snapshot(description: str, active_symbol: Optional[str] = None):
            history.record(description, {'first': _freeze(first), 'follow': _freeze(follow)},
                           active_symbol=active_symbol)

        snapshot("Initialized sets. First sets empty for NTs. Follow(Start) = {$}.", grammar.start_symbol)

        passes = self._compute_first_sets(first, snapshot)
        logs.append(f"First sets converged after {passes} pass(es).")
        snapshot("First sets computation converged.")

        passes = self._compute_follow_sets(first, follow, snapshot)
        logs.append(f"Follow sets converged after {passes} pass(es).")
        snapshot("Follow sets computation converged. Finished.")
        logs.append("Fixed point iteration completed.")

        LOGGER.info("[First/Follow] END: %d snapshots recorded", len(history))
        return FirstFollowResult(
            first=_freeze(first),
            follow=_freeze(follow),
            history=history.snapshots,
            logs=tuple(logs),
        )

    def _compute_first_sets(self, first: Dict[str, Set[str]], snapshot) -> int:
        """
        Grow FIRST sets until a full pass over the productions changes nothing.

        Returns:
            Number of passes made
        """
        passes = 0
        changed = True
        while changed:
            changed = False
            passes += 1
            for production in self.grammar.productions:
                lhs_first = first[production.lhs]
                before = len(lhs_first)

                nullable = True
                for symbol in production.rhs:
                    symbol_first = first.get(symbol, {symbol})
                    lhs_first.update(symbol_first - {EPSILON})
                    if EPSILON not in symbol_first:
                        nullable = False
                        break
                if nullable:
                    lhs_first.add(EPSILON)

                if len(lhs_first) != before:
                    changed = True
                    snapshot(f"Updated First({production.lhs}) using rule {production}", production.lhs)
        return passes

    def _compute_follow_sets(self, first: Dict[str, Set[str]], follow: Dict[str, Set[str]], snapshot) -> int:
        """Grow FOLLOW sets until a full pass changes nothing; returns the pass count."""
        passes = 0
        changed = True
        while changed:
            changed = False
            passes += 1
            for production in self.grammar.productions:
                rhs = production.rhs
                for i, symbol in enumerate(rhs):
                    if not self.grammar.is_non_terminal(symbol):
                        continue
                    symbol_follow = follow[symbol]
                    before = len(symbol_follow)

                    # FIRST(trailer) part
                    trailer_nullable = True
                    for trailer_symbol in rhs[i + 1:]:
                        trailer_first = first.get(trailer_symbol, {trailer_symbol})
                        symbol_follow.update(trailer_first - {EPSILON})
                        if EPSILON not in trailer_first:
                            trailer_nullable = False
                            break

                    # FOLLOW(A) part
                    if trailer_nullable:
                        symbol_follow.update(follow[production.lhs])

                    if len(symbol_follow) != before:
                        changed = True
                        snapshot(f"Updated Follow({symbol}) from rule context in {production}", symbol)
        return passes


def compute_first_follow(grammar: Grammar) -> FirstFollowResult:
    return FirstFollowComputer(grammar).compute()


# --- LR Items ---

@dataclass(frozen=True)
class LRItem:
    """
    A dotted production with an optional lookahead.

    ``rhs`` is the production body without epsilon markers, so the item of an
    epsilon production is complete at dot 0. ``production_index`` only drives
    the display order and is not part of item identity.
    """
    lhs: str
    rhs: Tuple[str, ...]
    dot: int  # Position of dot in RHS (0 = before first symbol)
    lookahead: Optional[str] = None  # Only used by LR(1)
    production_index: int = field(default=-1, compare=False)

    def __str__(self) -> str:
        rhs_with_dot = list(self.rhs)
        rhs_with_dot.insert(self.dot, ".")
        text = f"{self.lhs} -> {' '.join(rhs_with_dot)}"
        if self.lookahead is not None:
            return f"[{text}, {self.lookahead}]"
        return text

    def __deepcopy__(self, memo):
        # immutable
        return self

    def is_complete(self) -> bool:
        """Check if the dot is at the end of the production."""
        return self.dot >= len(self.rhs)

    def next_symbol(self) -> Optional[str]:
        """Get the symbol after the dot, or None if at end."""
        if self.is_complete():
            return None
        return self.rhs[self.dot]

    def advance(self) -> 'LRItem':
        return replace(self, dot=self.dot + 1)

    def sort_key(self) -> Tuple[int, int, str]:
        return (self.production_index, self.dot, self.lookahead or '')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lhs': self.lhs,
            'rhs': list(self.rhs),
            'dot': self.dot,
            'lookahead': self.lookahead,
            'production_index': self.production_index,
            'text': str(self),
        }

    @classmethod
    def start_of(cls, production: Production, lookahead: Optional[str] = None) -> 'LRItem':
        return cls(lhs=production.lhs, rhs=production.body, dot=0,
                   lookahead=lookahead, production_index=production.index)


class LRItemEngine:
    """Closure and goto over item sets for one LR algorithm variant."""

    def __init__(self, grammar: Grammar, first_follow: FirstFollowResult, algorithm: AlgorithmType):
        if algorithm not in LR_ALGORITHMS:
            raise ValueError(f"{algorithm.value} does not use LR items")
        self.grammar = grammar
        self.first_follow = first_follow
        self.algorithm = algorithm

        # Pre-compute productions by LHS for faster lookup
        self._productions_by_lhs: Dict[str, List[Production]] = {nt: [] for nt in grammar.non_terminals}
        for production in grammar.productions:
            self._productions_by_lhs[production.lhs].append(production)

    def closure(self, items: Iterable[LRItem]) -> Tuple[LRItem, ...]:
        """
        Compute the closure of a set of items.

        For every item ``[A -> alpha . B beta, a]`` with B a non-terminal, add
        ``[B -> . gamma, b]`` for each production ``B -> gamma``. For LR(1),
        b ranges over FIRST(beta) plus ``a`` when beta is nullable; the other
        variants carry no lookahead. The result is sorted by production
        index, dot position and lookahead.
        """
        result: List[LRItem] = []
        seen: Set[LRItem] = set()
        for item in items:
            if item not in seen:
                seen.add(item)
                result.append(item)

        # Worklist: items appended below are expanded in later iterations
        position = 0
        while position < len(result):
            item = result[position]
            position += 1
            symbol = item.next_symbol()
            if symbol is None or not self.grammar.is_non_terminal(symbol):
                continue

            for lookahead in self._lookaheads(item):
                for production in self._productions_by_lhs[symbol]:
                    new_item = LRItem.start_of(production, lookahead)
                    if new_item not in seen:
                        seen.add(new_item)
                        result.append(new_item)

        result.sort(key=LRItem.sort_key)
        return tuple(result)

    def goto(self, items: Iterable[LRItem], symbol: str) -> Tuple[LRItem, ...]:
        """Advance every item expecting ``symbol`` and close; empty means no transition."""
        moved = [item.advance() for item in items if item.next_symbol() == symbol]
        if not moved:
            return ()
        return self.closure(moved)

    def _lookaheads(self, item: LRItem) -> List[Optional[str]]:
        if self.algorithm != AlgorithmType.LR1:
            return [None]
        beta = item.rhs[item.dot + 1:]
        first_beta = self.first_follow.first_of_sequence(beta)
        lookaheads = first_beta - {EPSILON}
        if EPSILON in first_beta and item.lookahead is not None:
            lookaheads.add(item.lookahead)
        return sorted(lookaheads)


@dataclass(frozen=True)
class CanonicalState:
    """Represents a state in the canonical collection."""
    state_id: int
    items: Tuple[LRItem, ...]
    transitions: Dict[str, int] = field(default_factory=dict)  # symbol -> target state id

    def __str__(self) -> str:
        items_str = "\n  ".join(str(item) for item in self.items)
        return f"State {self.state_id}:\n  {items_str}"

    def item_set(self) -> FrozenSet[LRItem]:
        return frozenset(self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.state_id,
            'items': [item.to_dict() for item in self.items],
            'transitions': dict(self.transitions),
        }


@dataclass(frozen=True)
class LRCollectionResult:
    """Canonical collection of one LR variant with its parsing table and history."""
    algorithm: AlgorithmType
    augmented_production: Production
    states: Tuple[CanonicalState, ...]
    table: 'ParsingTable'
    history: Tuple[HistorySnapshot, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'algorithm': self.algorithm.value,
            'augmented_production': str(self.augmented_production),
            'states': [state.to_dict() for state in self.states],
            'table': self.table.to_dict(),
            'history': [snapshot.to_dict() for snapshot in self.history],
        }


class CanonicalCollectionBuilder:
    """Builds the canonical collection of LR states breadth-first from S' -> .S"""

    def __init__(self, grammar: Grammar, first_follow: FirstFollowResult, algorithm: AlgorithmType):
        self.grammar = grammar
        self.first_follow = first_follow
        self.algorithm = algorithm
        self.engine = LRItemEngine(grammar, first_follow, algorithm)

        # State management
        self._items: List[Tuple[LRItem, ...]] = []
        self._transitions: List[Dict[str, int]] = []
        self._state_map: Dict[FrozenSet[LRItem], int] = {}  # Map item sets to state IDs
        self._history = HistoryRecorder()

    def build(self) -> LRCollectionResult:
        LOGGER.info("[%s] START: building canonical collection", self.algorithm.value)
        augmented = self.grammar.augmented_production()
        lookahead = END_MARKER if self.algorithm == AlgorithmType.LR1 else None

        self._create_state(self.engine.closure([LRItem.start_of(augmented, lookahead)]))
        self._snapshot(f"Initialized State 0 (Closure of {augmented.lhs} -> .{augmented.rhs[0]})")

        # States are processed in creation order
        processed = 0
        while processed < len(self._items):
            state_id = processed
            self._snapshot(f"Processing State {state_id}", active_state_id=state_id)

            for symbol in self._symbols_after_dot(self._items[state_id]):
                if symbol in self._transitions[state_id]:
                    continue
                goto_items = self.engine.goto(self._items[state_id], symbol)
                if not goto_items:
                    continue
                self._snapshot(f"Calculated Goto(State {state_id}, '{symbol}')",
                               active_state_id=state_id, active_symbol=symbol)

                target_id = self._state_map.get(frozenset(goto_items))
                if target_id is not None:
                    self._transitions[state_id][symbol] = target_id
                    self._snapshot(f"Linked State {state_id} --({symbol})--> Existing State {target_id}",
                                   active_state_id=state_id, active_symbol=symbol, target_state_id=target_id)
                else:
                    target_id = self._create_state(goto_items)
                    self._transitions[state_id][symbol] = target_id
                    self._snapshot(f"Created New State {target_id}. "
                                   f"Linked State {state_id} --({symbol})--> State {target_id}",
                                   active_state_id=state_id, active_symbol=symbol, target_state_id=target_id)
            processed += 1

        self._snapshot("Canonical Collection construction complete.")
        states = self._freeze_states()
        LOGGER.info("[%s] END: %d states, %d snapshots", self.algorithm.value, len(states), len(self._history))

        table = ParsingTableBuilder(self.grammar, self.first_follow).build_lr_table(
            states, self.algorithm, augmented)
        return LRCollectionResult(
            algorithm=self.algorithm,
            augmented_production=augmented,
            states=states,
            table=table,
            history=self._history.snapshots,
        )

    def _create_state(self, items: Tuple[LRItem, ...]) -> int:
        state_id = len(self._items)
        self._items.append(items)
        self._transitions.append({})
        self._state_map[frozenset(items)] = state_id
        return state_id

    def _freeze_states(self) -> Tuple[CanonicalState, ...]:
        return tuple(CanonicalState(state_id=i, items=items, transitions=dict(self._transitions[i]))
                     for i, items in enumerate(self._items))

    def _snapshot(self, description: str, **active):
        self._history.record(description, self._freeze_states(), **active)

    @staticmethod
    def _symbols_after_dot(items: Iterable[LRItem]) -> List[str]:
        """Symbols right after the dot, in first-encountered order."""
        symbols: Dict[str, None] = {}
        for item in items:
            symbol = item.next_symbol()
            if symbol is not None:
                symbols[symbol] = None
        return list(symbols)


def build_lr_collection(grammar: Grammar, algorithm: AlgorithmType,
                        first_follow: Optional[FirstFollowResult] = None) -> LRCollectionResult:
    if first_follow is None:
        first_follow = compute_first_follow(grammar)
    return CanonicalCollectionBuilder(grammar, first_follow, AlgorithmType.from_name(algorithm)).build()


# --- Parsing Tables ---

class ActionType(Enum):
    """Enumeration of parsing table actions."""
    SHIFT = "shift"
    REDUCE = "reduce"
    GOTO = "goto"
    ACCEPT = "accept"
    CONFLICT = "conflict"
    PREDICT = "predict"  # LL(1) cell: expand the row non-terminal with a production


@dataclass(frozen=True)
class ParseAction:
    """A single table cell value; a CONFLICT keeps its alternatives in priority order."""
    action_type: ActionType
    value: Optional[Union[int, Production]] = None  # State ID for shift/goto, Production for reduce/predict
    alternatives: Tuple['ParseAction', ...] = ()

    @classmethod
    def shift(cls, state_id: int) -> 'ParseAction':
        return cls(ActionType.SHIFT, state_id)

    @classmethod
    def reduce(cls, production: Production) -> 'ParseAction':
        return cls(ActionType.REDUCE, production)

    @classmethod
    def goto(cls, state_id: int) -> 'ParseAction':
        return cls(ActionType.GOTO, state_id)

    @classmethod
    def accept(cls) -> 'ParseAction':
        return cls(ActionType.ACCEPT)

    @classmethod
    def predict(cls, production: Production) -> 'ParseAction':
        return cls(ActionType.PREDICT, production)

    @classmethod
    def conflict(cls, alternatives: Sequence['ParseAction']) -> 'ParseAction':
        if len(alternatives) < 2:
            raise ValueError("A conflict needs at least two alternatives")
        return cls(ActionType.CONFLICT, alternatives=tuple(alternatives))

    @property
    def is_conflict(self) -> bool:
        return self.action_type == ActionType.CONFLICT

    @property
    def primary(self) -> 'ParseAction':
        """The action a driver executes: the first alternative of a conflict."""
        return self.alternatives[0] if self.is_conflict else self

    @property
    def state(self) -> Optional[int]:
        return self.value if self.action_type in (ActionType.SHIFT, ActionType.GOTO) else None

    @property
    def production(self) -> Optional[Production]:
        return self.value if self.action_type in (ActionType.REDUCE, ActionType.PREDICT) else None

    def __str__(self) -> str:
        if self.action_type == ActionType.SHIFT:
            return f"s{self.value}"
        elif self.action_type == ActionType.REDUCE:
            return f"r({self.value})"
        elif self.action_type == ActionType.GOTO:
            return str(self.value)
        elif self.action_type == ActionType.ACCEPT:
            return "acc"
        elif self.action_type == ActionType.PREDICT:
            return str(self.value)
        else:
            return "/".join(str(action) for action in self.alternatives)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'type': self.action_type.value, 'text': str(self)}
        if self.state is not None:
            data['state'] = self.state
        if self.production is not None:
            data['production'] = str(self.production)
        if self.is_conflict:
            data['alternatives'] = [action.to_dict() for action in self.alternatives]
        return data


def merge_actions(existing: Optional[ParseAction], action: ParseAction) -> ParseAction:
    """
    Combine a new action with the current cell value.

    Equal actions collapse. Otherwise the cell becomes (or grows) a CONFLICT.
    Shifts always come first; the other alternatives keep registration order.
    """
    if existing is None or existing == action:
        return existing or action
    alternatives = list(existing.alternatives) if existing.is_conflict else [existing]
    if action in alternatives:
        return existing
    alternatives.append(action)
    alternatives.sort(key=lambda alt: alt.action_type != ActionType.SHIFT)
    return ParseAction.conflict(alternatives)


@dataclass(frozen=True)
class Conflict:
    """Represents a parsing conflict in an LR table cell."""
    state_id: int
    symbol: str
    conflict_type: str  # "shift/reduce" or "reduce/reduce"
    actions: Tuple[ParseAction, ...]

    @property
    def description(self) -> str:
        return " vs ".join(str(action) for action in self.actions)

    def __str__(self) -> str:
        return f"{self.conflict_type} conflict in state {self.state_id} on symbol '{self.symbol}': {self.description}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state_id,
            'symbol': self.symbol,
            'type': self.conflict_type,
            'actions': [str(action) for action in self.actions],
        }


@dataclass(frozen=True)
class TableOverwrite:
    """An LL(1) cell whose production was replaced by a later one (last write wins)."""
    non_terminal: str
    terminal: str
    replaced: Production
    production: Production

    def __str__(self) -> str:
        return f"M[{self.non_terminal}, {self.terminal}]: {self.replaced} replaced by {self.production}"


@dataclass
class ParsingTable:
    """
    Rows keyed by state id (LR) or non-terminal (LL(1)), columns by symbol.

    ``action_headers`` are the terminals plus '$'; LR tables add the
    non-terminals as ``goto_headers``.
    """
    algorithm: AlgorithmType
    action_headers: Tuple[str, ...]
    goto_headers: Tuple[str, ...] = ()
    rows: Dict[Union[int, str], Dict[str, ParseAction]] = field(default_factory=dict)
    overwrites: List[TableOverwrite] = field(default_factory=list)

    @property
    def headers(self) -> Tuple[str, ...]:
        return self.action_headers + self.goto_headers

    def get(self, row: Union[int, str], symbol: str) -> Optional[ParseAction]:
        return self.rows.get(row, {}).get(symbol)

    def add_action(self, row: Union[int, str], symbol: str, action: ParseAction):
        """Store ``action``, merging with any existing cell into a conflict."""
        cells = self.rows.setdefault(row, {})
        cells[symbol] = merge_actions(cells.get(symbol), action)

    def conflicts(self) -> List[Conflict]:
        """Detect shift/reduce and reduce/reduce conflicts in the table."""
        conflicts = []
        for row, cells in self.rows.items():
            for symbol, action in cells.items():
                if not action.is_conflict:
                    continue
                has_shift = any(alt.action_type == ActionType.SHIFT for alt in action.alternatives)
                conflicts.append(Conflict(
                    state_id=row,
                    symbol=symbol,
                    conflict_type="shift/reduce" if has_shift else "reduce/reduce",
                    actions=action.alternatives,
                ))
        return conflicts

    def __str__(self) -> str:
        lines = [f"{self.algorithm.value} Parsing Table:"]
        for row, cells in self.rows.items():
            for symbol in self.headers:
                if symbol in cells:
                    lines.append(f"  M[{row}, {symbol}] = {cells[symbol]}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'algorithm': self.algorithm.value,
            'headers': list(self.headers),
            'action_headers': list(self.action_headers),
            'goto_headers': list(self.goto_headers),
            'rows': {str(row): {symbol: str(action) for symbol, action in cells.items()}
                     for row, cells in self.rows.items()},
            'conflicts': [conflict.to_dict() for conflict in self.conflicts()],
            'overwrites': [str(overwrite) for overwrite in self.overwrites],
        }


class ParsingTableBuilder:
    """Generates LL(1) tables from FIRST/FOLLOW and LR tables from canonical states."""

    def __init__(self, grammar: Grammar, first_follow: FirstFollowResult):
        self.grammar = grammar
        self.first_follow = first_follow

    def build_ll1_table(self) -> ParsingTable:
        """
        Build the LL(1) predictive table.

        For ``A -> alpha``: M[A, a] = the production for every terminal a in
        FIRST(alpha), and M[A, b] for every b in FOLLOW(A) when alpha is
        nullable. A cell already holding another production is overwritten
        (last write wins); each overwrite is kept in ``table.overwrites``.
        """
        table = ParsingTable(
            algorithm=AlgorithmType.LL1,
            action_headers=self.grammar.terminals + (END_MARKER,),
            rows={nt: {} for nt in self.grammar.non_terminals},
        )

        for production in self.grammar.productions:
            first_alpha = self.first_follow.first_of_sequence(production.rhs)
            columns = sorted(first_alpha - {EPSILON})
            if EPSILON in first_alpha:
                columns.extend(sorted(self.first_follow.follow[production.lhs]))

            row = table.rows[production.lhs]
            for terminal in columns:
                existing = row.get(terminal)
                if existing is not None and existing.production != production:
                    overwrite = TableOverwrite(production.lhs, terminal, existing.production, production)
                    LOGGER.warning("LL(1) conflict, last production wins: %s", overwrite)
                    table.overwrites.append(overwrite)
                row[terminal] = ParseAction.predict(production)

        return table

    def build_lr_table(self, states: Sequence[CanonicalState], algorithm: AlgorithmType,
                       augmented: Production) -> ParsingTable:
        """
        Build the ACTION/GOTO table of an LR variant.

        Transitions on terminals become shifts and on non-terminals gotos.
        A complete augmented item accepts on '$'. Any other complete item
        reduces on: every terminal and '$' (LR(0)), FOLLOW(lhs) (SLR(1)),
        or its own lookahead (LR(1)). Clashing actions are kept as CONFLICT.
        """
        action_headers = self.grammar.terminals + (END_MARKER,)
        table = ParsingTable(
            algorithm=algorithm,
            action_headers=action_headers,
            goto_headers=self.grammar.non_terminals,
            rows={state.state_id: {} for state in states},
        )

        for state in states:
            # Shift / Goto
            for symbol, target in state.transitions.items():
                if self.grammar.is_non_terminal(symbol):
                    table.add_action(state.state_id, symbol, ParseAction.goto(target))
                else:
                    table.add_action(state.state_id, symbol, ParseAction.shift(target))

            # Reduce / Accept
            for item in state.items:
                if not item.is_complete():
                    continue
                if item.lhs == augmented.lhs:
                    if algorithm != AlgorithmType.LR1 or item.lookahead == END_MARKER:
                        table.add_action(state.state_id, END_MARKER, ParseAction.accept())
                    continue

                reduce_action = ParseAction.reduce(self.grammar.productions[item.production_index])
                for terminal in self._reduce_columns(item, algorithm, action_headers):
                    table.add_action(state.state_id, terminal, reduce_action)

        conflicts = table.conflicts()
        if conflicts:
            LOGGER.info("[%s] table has %d conflict cell(s)", algorithm.value, len(conflicts))
        return table

    def _reduce_columns(self, item: LRItem, algorithm: AlgorithmType,
                        action_headers: Tuple[str, ...]) -> List[str]:
        if algorithm == AlgorithmType.LR0:
            return list(action_headers)
        if algorithm == AlgorithmType.SLR1:
            return sorted(self.first_follow.follow[item.lhs])
        return [item.lookahead] if item.lookahead is not None else []


def build_ll1_table(grammar: Grammar, first_follow: Optional[FirstFollowResult] = None) -> ParsingTable:
    if first_follow is None:
        first_follow = compute_first_follow(grammar)
    return ParsingTableBuilder(grammar, first_follow).build_ll1_table()


# --- Workflow ---

class GrammarWorkflowManager:
    """
    Runs the whole analysis pipeline for one grammar text.

    The grammar is parsed on construction; FIRST/FOLLOW, the LL(1) table and
    each LR collection are built on first use and cached.
    """

    def __init__(self, cfg_text: str):
        self.cfg_text = cfg_text
        self.grammar = GrammarProcessor().parse_grammar(cfg_text)
        self._first_follow: Optional[FirstFollowResult] = None
        self._ll1_table: Optional[ParsingTable] = None
        self._collections: Dict[AlgorithmType, LRCollectionResult] = {}

    @property
    def first_follow(self) -> FirstFollowResult:
        if self._first_follow is None:
            self._first_follow = FirstFollowComputer(self.grammar).compute()
        return self._first_follow

    @property
    def ll1_table(self) -> ParsingTable:
        if self._ll1_table is None:
            self._ll1_table = ParsingTableBuilder(self.grammar, self.first_follow).build_ll1_table()
        return self._ll1_table

    def lr_collection(self, algorithm: Union[str, AlgorithmType]) -> LRCollectionResult:
        algorithm = AlgorithmType.from_name(algorithm)
        if algorithm not in self._collections:
            self._collections[algorithm] = CanonicalCollectionBuilder(
                self.grammar, self.first_follow, algorithm).build()
        return self._collections[algorithm]

    def table(self, algorithm: Union[str, AlgorithmType]) -> ParsingTable:
        algorithm = AlgorithmType.from_name(algorithm)
        if algorithm == AlgorithmType.LL1:
            return self.ll1_table
        return self.lr_collection(algorithm).table

    def simulate(self, algorithm: Union[str, AlgorithmType], tokens, config=None):
        """Run the matching parse driver on ``tokens`` and return its ParseResult."""
        from parse_simulator import simulate

        return simulate(self.grammar, self.table(algorithm), tokens, config)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'grammar': self.grammar.to_dict(),
            'first_follow': self.first_follow.to_dict(),
            'll1_table': self.ll1_table.to_dict(),
            'lr': {algorithm.value: self.lr_collection(algorithm).to_dict() for algorithm in LR_ALGORITHMS},
        }
