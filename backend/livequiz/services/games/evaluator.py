"""Answer evaluation: decides whether a submitted value is correct.

Everything here is pure. Scores are accumulated by the engine; this module
only answers "is it correct" and "how many points is that worth".
"""

from typing import Any, Callable, Dict, List, Optional

from .state import AnswerValue, QuestionDef, QuestionType, Scalar

_TRUE_WORDS = frozenset({'true', 'benar'})
_FALSE_WORDS = frozenset({'false', 'salah'})


def normalize(value: Scalar) -> str:
    """Canonical comparison form of a scalar: trimmed, lower-cased text."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip().lower()


def normalize_all(values: List[Scalar]) -> List[str]:
    """Normalize element-wise and sort, for order-independent comparison."""
    return sorted(normalize(v) for v in values)


def is_empty(answer: AnswerValue) -> bool:
    if answer is None:
        return True
    if isinstance(answer, (list, tuple)):
        return all(normalize(v) == '' for v in answer)
    return normalize(answer) == ''


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _option_text(question: QuestionDef, index: int) -> Optional[str]:
    if 0 <= index < len(question.options):
        return question.options[index]
    return None


def _expected_choices(question: QuestionDef) -> List[Scalar]:
    """Correct choice values, with option indices resolved to option text."""
    correct = question.correct_answer
    if isinstance(correct, (list, tuple)):
        if correct and all(_is_index(v) for v in correct):
            texts = (_option_text(question, v) for v in correct)
            return [t for t in texts if t is not None]
        return list(correct)
    if _is_index(correct):
        text = _option_text(question, correct)
        return [text] if text is not None else [correct]
    return [correct]


def _canonical_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (list, tuple)):
        return None
    text = normalize(value)
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return None


def _evaluate_single(question: QuestionDef, answer: AnswerValue) -> bool:
    if isinstance(answer, (list, tuple)):
        return False
    correct = question.correct_answer
    if _is_index(correct):
        text = _option_text(question, correct)
        if text is not None:
            return normalize(text) == normalize(answer)
    if isinstance(correct, (list, tuple)):
        return normalize(answer) in normalize_all(_expected_choices(question))
    return normalize(correct) == normalize(answer)


def _evaluate_multiple(question: QuestionDef, answer: AnswerValue) -> bool:
    expected = normalize_all(_expected_choices(question))
    if isinstance(answer, (list, tuple)):
        submitted = normalize_all(list(answer))
        return len(submitted) == len(expected) and submitted == expected
    # A lone scalar only has to be one of the correct choices
    return normalize(answer) in expected


def _evaluate_boolean(question: QuestionDef, answer: AnswerValue) -> bool:
    correct = question.correct_answer
    if _is_index(correct) and _option_text(question, correct) is not None:
        correct = _option_text(question, correct)
    expected = _canonical_bool(correct)
    given = _canonical_bool(answer)
    return expected is not None and given is not None and expected == given


def _matches_accepted(question: QuestionDef, given: str) -> bool:
    for alternative in question.accepted_answers:
        if normalize(alternative) == given:
            return True
    return False


def _evaluate_text(question: QuestionDef, answer: AnswerValue) -> bool:
    if isinstance(answer, (list, tuple)):
        return False
    given = normalize(answer)
    correct = question.correct_answer
    candidates = correct if isinstance(correct, (list, tuple)) else [correct]
    if any(c is not None and normalize(c) == given for c in candidates):
        return True
    return _matches_accepted(question, given)


def _evaluate_by_shape(question: QuestionDef, answer: AnswerValue) -> bool:
    """Grade a question of unknown type from the shape of its correct answer."""
    correct = question.correct_answer
    if isinstance(correct, (list, tuple)):
        if _evaluate_multiple(question, answer):
            return True
    elif _evaluate_single(question, answer):
        return True
    if not question.accepted_answers:
        return False
    accepted = {normalize(a) for a in question.accepted_answers}
    if isinstance(answer, (list, tuple)):
        submitted = normalize_all(list(answer))
        if isinstance(correct, (list, tuple)) and len(submitted) != len(correct):
            return False
        return all(v in accepted for v in submitted)
    return normalize(answer) in accepted


_HANDLERS: Dict[Optional[QuestionType], Callable[[QuestionDef, AnswerValue], bool]] = {
    QuestionType.SINGLE_CHOICE: _evaluate_single,
    QuestionType.MULTIPLE_CHOICE: _evaluate_multiple,
    QuestionType.TRUE_FALSE: _evaluate_boolean,
    QuestionType.SHORT_ANSWER: _evaluate_text,
}


def evaluate(question: QuestionDef, answer: AnswerValue) -> bool:
    """Return True when ``answer`` is a correct response to ``question``.

    Empty submissions (None, blank text, empty list) are always wrong,
    whatever the question type.
    """
    if is_empty(answer):
        return False
    handler = _HANDLERS.get(question.question_type, _evaluate_by_shape)
    return handler(question, answer)


def points_for(question: QuestionDef, is_correct: bool) -> int:
    return max(1, int(question.points or 1)) if is_correct else 0
