from __future__ import annotations

import logging
import math
import random
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol, TypeVar

from .quiz_data import ConfigurationError, Option, Question, QuizData, validate_quiz_data

logger = logging.getLogger(__name__)

T = TypeVar("T")

TIE_NUDGE = 1e-4  # ordering only; never shown
BONUS_MIN_QUESTIONS = 3
BONUS_MAX_QUESTIONS = 5


class RandomSource(Protocol):
    """Randomness used by a session (question order, option order, bonus size)."""

    def randint(self, a: int, b: int) -> int:
        """Uniform integer in [a, b]."""
        ...

    def shuffle(self, items: list[T]) -> None:
        """Uniform in-place permutation."""
        ...


class SeededRng:
    """Seeded random source; shuffles are explicit Fisher-Yates."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def shuffle(self, items: list[T]) -> None:
        for i in range(len(items) - 1, 0, -1):
            j = self._rng.randint(0, i)
            items[i], items[j] = items[j], items[i]


class Phase(str, Enum):
    MAIN = "main"
    BONUS = "bonus"
    RESULT = "result"


class TiePolicy(str, Enum):
    SHARED_MAX = "shared_max"  # every spice at the maximum count
    TOP_TWO = "top_two"  # only the two leading spices


@dataclass(frozen=True, slots=True)
class ScoringPolicy:
    tie: TiePolicy = TiePolicy.SHARED_MAX
    collapse_pure: bool = True
    bonus_min: int = BONUS_MIN_QUESTIONS
    bonus_max: int = BONUS_MAX_QUESTIONS


@dataclass(frozen=True, slots=True)
class QuizResult:
    primary: str
    secondary: str
    primary_percent: int
    secondary_percent: int
    is_pure: bool
    counts: tuple[tuple[str, int], ...]  # raw main + bonus counts, spice order
    bonus_ran: bool = False

    def count_for(self, key: str) -> int:
        return dict(self.counts).get(key, 0)

    @property
    def total_answered(self) -> int:
        return sum(n for _, n in self.counts)


@dataclass(frozen=True, slots=True)
class SessionState:
    """Immutable session state; every action yields a new instance."""

    phase: Phase
    questions: tuple[Question, ...]
    answers: tuple[str | None, ...]
    index: int = 0
    bonus_questions: tuple[Question, ...] = ()
    bonus_answers: tuple[str | None, ...] = ()
    bonus_index: int = 0
    tie: tuple[str, ...] | None = None
    result: QuizResult | None = None
    generation: int = 1

    @property
    def in_bonus(self) -> bool:
        return self.phase is Phase.BONUS

    def active_questions(self) -> tuple[Question, ...]:
        return self.bonus_questions if self.in_bonus else self.questions

    def active_answers(self) -> tuple[str | None, ...]:
        return self.bonus_answers if self.in_bonus else self.answers

    def active_index(self) -> int:
        return self.bonus_index if self.in_bonus else self.index

    def current_question(self) -> Question | None:
        if self.phase is Phase.RESULT:
            return None
        qs = self.active_questions()
        i = self.active_index()
        return qs[i] if 0 <= i < len(qs) else None

    def current_answer(self) -> str | None:
        if self.phase is Phase.RESULT:
            return None
        answers = self.active_answers()
        i = self.active_index()
        return answers[i] if 0 <= i < len(answers) else None


# Actions -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Start:
    pass


@dataclass(frozen=True, slots=True)
class Select:
    index: int
    category: str


@dataclass(frozen=True, slots=True)
class Advance:
    pass


@dataclass(frozen=True, slots=True)
class Retreat:
    pass


@dataclass(frozen=True, slots=True)
class Skip:
    pass


Action = Start | Select | Advance | Retreat | Skip


# Scoring -------------------------------------------------------------------


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def tally(answers: Iterable[str | None], categories: Sequence[str]) -> dict[str, int]:
    """Integer count per spice, in spice order. Unset answers are ignored."""

    counts = {key: 0 for key in categories}
    for a in answers:
        if a is not None and a in counts:
            counts[a] += 1
    return counts


def order_scores(scores: Mapping[str, float]) -> list[tuple[str, float]]:
    # Stable: equal scores keep spice order.
    return sorted(scores.items(), key=lambda kv: kv[1], reverse=True)


def evaluate_tie(
    answers: Iterable[str | None],
    categories: Sequence[str],
    policy: TiePolicy = TiePolicy.SHARED_MAX,
) -> tuple[str, ...] | None:
    """Return the tied spices if the top two main-round counts are equal."""

    ordered = order_scores(tally(answers, categories))
    if len(ordered) < 2:
        return None
    top_score = ordered[0][1]
    if ordered[1][1] != top_score:
        return None
    if policy is TiePolicy.TOP_TWO:
        return (ordered[0][0], ordered[1][0])
    return tuple(key for key, score in ordered if score == top_score)


def filter_bonus_pool(bonus: Iterable[Question], tie: Sequence[str]) -> list[Question]:
    """Restrict bonus options to the tie set, dropping questions left with < 2 options."""

    tied = set(tie)
    pool: list[Question] = []
    for q in bonus:
        options = tuple(o for o in q.options if o.category in tied)
        if len(options) >= 2:
            pool.append(Question(qid=q.qid, text=q.text, options=options))
    return pool


def start_bonus(
    tie: Sequence[str],
    bonus: Iterable[Question],
    rng: RandomSource,
    *,
    min_questions: int = BONUS_MIN_QUESTIONS,
    max_questions: int = BONUS_MAX_QUESTIONS,
) -> tuple[Question, ...]:
    """Draw the bonus round for ``tie``. An empty tuple means no bonus round."""

    pool = filter_bonus_pool(bonus, tie)
    if not pool:
        return ()
    rng.shuffle(pool)
    count = min(len(pool), rng.randint(min_questions, max_questions))
    return tuple(_with_shuffled_options(q, rng) for q in pool[:count])


def first_appearance(candidates: Sequence[str], answers: Iterable[str | None]) -> str:
    """Earliest main-round answer among ``candidates``; falls back to the first candidate."""

    for a in answers:
        if a is not None and a in candidates:
            return a
    return candidates[0]


def resolve(
    answers: Sequence[str | None],
    bonus_answers: Sequence[str | None],
    categories: Sequence[str],
    *,
    collapse_pure: bool = True,
) -> QuizResult:
    """Order spices by main + bonus picks and derive the displayed percentages."""

    raw = tally(list(answers) + list(bonus_answers), categories)
    if not raw:
        raise ConfigurationError("cannot resolve a quiz without spices")

    scores = {key: float(n) for key, n in raw.items()}
    ordered = order_scores(scores)
    top_score = ordered[0][1]
    top_ties = [key for key, score in ordered if score == top_score]
    if len(top_ties) > 1:
        pick = first_appearance(top_ties, answers)
        scores[pick] += TIE_NUDGE
        ordered = order_scores(scores)

    primary = ordered[0][0]
    secondary = next((key for key, _ in ordered if key != primary), primary)

    total = max(1, sum(raw.values()))
    is_pure = secondary == primary or raw[secondary] == 0

    if collapse_pure and is_pure:
        secondary = primary
        primary_pct, secondary_pct = 100, 0
    else:
        is_pure = False
        primary_pct = round_half_up(100.0 * raw[primary] / total)
        # The two badges never add up to more than 100.
        secondary_pct = min(round_half_up(100.0 * raw[secondary] / total), 100 - primary_pct)

    return QuizResult(
        primary=primary,
        secondary=secondary,
        primary_percent=primary_pct,
        secondary_percent=secondary_pct,
        is_pure=is_pure,
        counts=tuple(raw.items()),
        bonus_ran=any(a is not None for a in bonus_answers),
    )


# Transitions ---------------------------------------------------------------


def _with_shuffled_options(q: Question, rng: RandomSource) -> Question:
    options = list(q.options)
    rng.shuffle(options)
    return Question(qid=q.qid, text=q.text, options=tuple(options))


def start_session(data: QuizData, rng: RandomSource, *, generation: int = 1) -> SessionState:
    """Fresh main round: shuffled question order, options shuffled once per question."""

    validate_quiz_data(data)
    questions = list(data.questions)
    rng.shuffle(questions)
    shuffled = tuple(_with_shuffled_options(q, rng) for q in questions)
    return SessionState(
        phase=Phase.MAIN,
        questions=shuffled,
        answers=(None,) * len(shuffled),
        generation=generation,
    )


def transition(
    state: SessionState,
    action: Action,
    *,
    data: QuizData,
    rng: RandomSource,
    policy: ScoringPolicy | None = None,
) -> SessionState:
    """Apply ``action`` to ``state``. Out-of-range navigation returns ``state`` unchanged."""

    pol = policy or ScoringPolicy()
    if isinstance(action, Start):
        return start_session(data, rng, generation=state.generation + 1)
    if state.phase is Phase.RESULT:
        return state
    if isinstance(action, Select):
        return _select(state, action)
    if isinstance(action, Advance):
        if state.current_answer() is None:
            return state
        return _forward(state, data=data, rng=rng, policy=pol)
    if isinstance(action, Skip):
        if state.in_bonus:
            return state
        return _forward(state, data=data, rng=rng, policy=pol)
    if isinstance(action, Retreat):
        return _retreat(state)
    return state


def _select(state: SessionState, action: Select) -> SessionState:
    questions = state.active_questions()
    if not (0 <= action.index < len(questions)):
        return state
    if not questions[action.index].offers(action.category):
        return state
    answers = list(state.active_answers())
    answers[action.index] = action.category
    if state.in_bonus:
        return replace(state, bonus_answers=tuple(answers))
    return replace(state, answers=tuple(answers))


def _forward(state: SessionState, *, data: QuizData, rng: RandomSource, policy: ScoringPolicy) -> SessionState:
    if state.in_bonus:
        if state.bonus_index < len(state.bonus_questions) - 1:
            return replace(state, bonus_index=state.bonus_index + 1)
        return _resolved(state, data=data, policy=policy)

    if state.index < len(state.questions) - 1:
        return replace(state, index=state.index + 1)

    tie = evaluate_tie(state.answers, data.category_keys(), policy.tie)
    if tie is None:
        return _resolved(state, data=data, policy=policy)

    bonus = start_bonus(
        tie,
        data.bonus,
        rng,
        min_questions=policy.bonus_min,
        max_questions=policy.bonus_max,
    )
    if not bonus:
        return _resolved(replace(state, tie=tie), data=data, policy=policy)
    return replace(
        state,
        phase=Phase.BONUS,
        tie=tie,
        bonus_questions=bonus,
        bonus_answers=(None,) * len(bonus),
        bonus_index=0,
    )


def _retreat(state: SessionState) -> SessionState:
    if state.in_bonus:
        if state.bonus_index > 0:
            return replace(state, bonus_index=state.bonus_index - 1)
        return replace(
            state,
            phase=Phase.MAIN,
            bonus_questions=(),
            bonus_answers=(),
            bonus_index=0,
            tie=None,
        )
    if state.index == 0:
        return state
    return replace(state, index=state.index - 1)


def _resolved(state: SessionState, *, data: QuizData, policy: ScoringPolicy) -> SessionState:
    result = resolve(
        state.answers,
        state.bonus_answers,
        data.category_keys(),
        collapse_pure=policy.collapse_pure,
    )
    return replace(state, phase=Phase.RESULT, result=result)


# Controller ----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class QuizSnapshot:
    """View model for the UI (pure data)."""

    phase: Phase
    prompt: str
    options: tuple[Option, ...]
    selected: str | None
    index: int
    question_number: int
    total_questions: int
    progress_text: str
    progress: float
    can_retreat: bool
    can_advance: bool
    can_skip: bool
    tie: tuple[str, ...] | None
    result: QuizResult | None
    generation: int


class QuizSession:
    """Owns one session's state plus the data, random source and policy it runs under."""

    def __init__(
        self,
        *,
        data: QuizData,
        seed: int,
        rng: RandomSource | None = None,
        policy: ScoringPolicy | None = None,
    ) -> None:
        self._data = data
        self._seed = int(seed)
        self._rng: RandomSource = rng if rng is not None else SeededRng(seed)
        self._policy = policy or ScoringPolicy()
        self._state = start_session(data, self._rng)
        logger.info("Quiz session started", extra={"seed": self._seed, "questions": len(self._state.questions)})

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def data(self) -> QuizData:
        return self._data

    @property
    def policy(self) -> ScoringPolicy:
        return self._policy

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def generation(self) -> int:
        return self._state.generation

    @property
    def result(self) -> QuizResult | None:
        return self._state.result

    def dispatch(self, action: Action) -> SessionState:
        before = self._state
        after = transition(before, action, data=self._data, rng=self._rng, policy=self._policy)
        self._state = after
        self._log_transition(before, after, action)
        return after

    def start(self) -> SessionState:
        return self.dispatch(Start())

    def select(self, index: int, category: str) -> SessionState:
        return self.dispatch(Select(index=index, category=category))

    def select_current(self, category: str) -> SessionState:
        return self.select(self._state.active_index(), category)

    def advance(self) -> SessionState:
        return self.dispatch(Advance())

    def retreat(self) -> SessionState:
        return self.dispatch(Retreat())

    def skip(self) -> SessionState:
        return self.dispatch(Skip())

    def restore(self, *, order: Sequence[int], answers: Sequence[str | None], index: int) -> bool:
        """Rebuild a main round from saved progress. Returns False if it does not fit the data."""

        pool = self._data.questions
        if sorted(order) != list(range(len(pool))) or len(answers) != len(pool):
            return False
        if not (0 <= index < len(pool)):
            return False
        questions = [pool[qid] for qid in order]
        for q, a in zip(questions, answers):
            if a is not None and not q.offers(a):
                return False
        self._state = SessionState(
            phase=Phase.MAIN,
            questions=tuple(_with_shuffled_options(q, self._rng) for q in questions),
            answers=tuple(answers),
            index=int(index),
            generation=self._state.generation + 1,
        )
        logger.info("Quiz progress restored", extra={"index": index})
        return True

    def snapshot(self) -> QuizSnapshot:
        s = self._state
        if s.phase is Phase.RESULT:
            total = len(s.questions) + len(s.bonus_questions)
            return QuizSnapshot(
                phase=s.phase,
                prompt="",
                options=(),
                selected=None,
                index=0,
                question_number=total,
                total_questions=total,
                progress_text="Complete",
                progress=1.0,
                can_retreat=False,
                can_advance=False,
                can_skip=False,
                tie=s.tie,
                result=s.result,
                generation=s.generation,
            )

        total = len(s.questions) + (len(s.bonus_questions) if s.in_bonus else 0)
        completed = len(s.questions) + s.bonus_index if s.in_bonus else s.index
        current = min(completed + 1, max(total, 1))
        question = s.current_question()
        return QuizSnapshot(
            phase=s.phase,
            prompt="" if question is None else question.text,
            options=() if question is None else question.options,
            selected=s.current_answer(),
            index=s.active_index(),
            question_number=current,
            total_questions=total,
            progress_text=f"Question {current} of {total}",
            progress=max(0.0, min(1.0, completed / max(total, 1))),
            can_retreat=s.in_bonus or s.index > 0,
            can_advance=s.current_answer() is not None,
            can_skip=not s.in_bonus,
            tie=s.tie,
            result=None,
            generation=s.generation,
        )

    def _log_transition(self, before: SessionState, after: SessionState, action: Action) -> None:
        if after is before:
            return
        if isinstance(action, Start):
            logger.info("Quiz session restarted", extra={"generation": after.generation})
            return
        if before.phase is Phase.MAIN and after.phase is Phase.BONUS:
            logger.info(
                "Tie after main round, starting bonus",
                extra={"tie": list(after.tie or ()), "bonus_questions": len(after.bonus_questions)},
            )
        elif before.phase is Phase.BONUS and after.phase is Phase.MAIN:
            logger.info("Left bonus round")
        if after.phase is Phase.RESULT and after.result is not None:
            if before.phase is Phase.MAIN and after.tie is not None:
                logger.info("Tie with no usable bonus questions", extra={"tie": list(after.tie)})
            r = after.result
            logger.info(
                "Quiz resolved",
                extra={
                    "primary": r.primary,
                    "secondary": r.secondary,
                    "primary_percent": r.primary_percent,
                    "secondary_percent": r.secondary_percent,
                    "is_pure": r.is_pure,
                    "bonus_ran": r.bonus_ran,
                },
            )
