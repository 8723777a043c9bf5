"""Quiz catalog: read-only quiz lookups for the engine.

Quizzes are authored elsewhere; a live session only ever sees the
immutable snapshot taken here when it is created.
"""

from sqlalchemy.exc import SQLAlchemyError

from livequiz import db
from livequiz.errors import NotFound, Unavailable
from livequiz.models import Quiz

from .state import QuestionDef, QuestionType, QuizSnapshot


def snapshot_quiz(quiz: Quiz) -> QuizSnapshot:
    questions = tuple(
        QuestionDef(
            id=str(q.id),
            text=q.text,
            question_type=QuestionType.parse(q.question_type),
            options=tuple(str(o) for o in q.option_list),
            correct_answer=q.correct_value,
            accepted_answers=tuple(str(a) for a in q.accepted_list),
            points=max(1, int(q.points or 1)),
            time_limit=int(q.time_limit or 30),
        )
        for q in quiz.questions
    )
    return QuizSnapshot(
        id=quiz.id,
        title=quiz.title,
        owner_id=quiz.owner_id,
        questions=questions,
        was_published=bool(quiz.is_published),
    )


class QuizCatalog:
    def load(self, quiz_id) -> QuizSnapshot:
        try:
            key = int(quiz_id)
        except (TypeError, ValueError):
            raise NotFound('Quiz not found')
        try:
            quiz = db.session.get(Quiz, key)
            if quiz is None:
                raise NotFound('Quiz not found')
            return snapshot_quiz(quiz)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise Unavailable('Quiz catalog unavailable') from exc

    def set_discoverable(self, quiz_id: int, visible: bool) -> None:
        """Toggle whether the quiz is listed publicly."""
        try:
            quiz = db.session.get(Quiz, quiz_id)
            if quiz is None or quiz.is_published == visible:
                return
            quiz.is_published = visible
            db.session.add(quiz)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise Unavailable('Quiz catalog unavailable') from exc
