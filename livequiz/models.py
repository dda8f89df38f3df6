from livequiz import db
from livequiz.services.quiz.errors import NotFoundError, ValidationError
from livequiz.services.quiz.room import OPTION_COUNT, QuestionSpec
import json

DIFFICULTIES = ('easy', 'medium', 'hard')
MIN_SECONDS = 5
MAX_SECONDS = 300


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    text = db.Column(db.Text, nullable=False)
    options_json = db.Column('options', db.Text, nullable=False)  # JSON-encoded list of 4 strings
    correct_index = db.Column(db.Integer, nullable=False, default=0)
    seconds = db.Column(db.Integer, nullable=False, default=30)
    difficulty = db.Column(db.String(16), nullable=False, default='medium')
    category = db.Column(db.String(64), nullable=False, index=True)

    @property
    def options(self):
        try:
            return json.loads(self.options_json or '[]')
        except ValueError:
            return []

    @options.setter
    def options(self, value):
        self.options_json = json.dumps(list(value))

    def apply(self, fields: dict) -> None:
        """Copy validated fields (see ``validate_question``) onto the row."""
        self.text = fields['text']
        self.options = fields['options']
        self.correct_index = fields['correctIndex']
        self.seconds = fields['seconds']
        self.difficulty = fields['difficulty']
        self.category = fields['category']

    def to_dict(self):
        return {
            'id': self.id,
            # The web client keys rows by _id
            '_id': self.id,
            'text': self.text,
            'options': self.options,
            'correctIndex': self.correct_index,
            'seconds': self.seconds,
            'difficulty': self.difficulty,
            'category': self.category,
        }

    def to_spec(self) -> QuestionSpec:
        return QuestionSpec(
            id=self.id,
            text=self.text,
            options=tuple(self.options),
            correct_index=self.correct_index,
            seconds=self.seconds,
            difficulty=self.difficulty,
            category=self.category,
        )


def validate_question(data) -> dict:
    """Validate a question payload and return the cleaned fields.

    Mirrors the checks done by the web editor so that bad rows can never
    reach a room.
    """
    if not isinstance(data, dict):
        raise ValidationError('Expected a JSON object')

    text = data.get('text')
    if not isinstance(text, str) or not text.strip():
        raise ValidationError('Question text is required')

    options = data.get('options')
    if not isinstance(options, list) or len(options) != OPTION_COUNT:
        raise ValidationError(f'Exactly {OPTION_COUNT} options are required')
    if any(not isinstance(o, str) or not o.strip() for o in options):
        raise ValidationError('All options are required')

    correct_index = data.get('correctIndex', 0)
    if isinstance(correct_index, bool) or not isinstance(correct_index, int) \
            or not 0 <= correct_index < OPTION_COUNT:
        raise ValidationError(f'correctIndex must be between 0 and {OPTION_COUNT - 1}')

    seconds = data.get('seconds', 30)
    if isinstance(seconds, bool) or not isinstance(seconds, int) or not MIN_SECONDS <= seconds <= MAX_SECONDS:
        raise ValidationError(f'Seconds must be between {MIN_SECONDS} and {MAX_SECONDS}')

    difficulty = data.get('difficulty') or 'medium'
    if difficulty not in DIFFICULTIES:
        raise ValidationError(f'Difficulty must be one of: {", ".join(DIFFICULTIES)}')

    category = data.get('category')
    if not isinstance(category, str) or not category.strip():
        raise ValidationError('Category is required')

    return {
        'text': text.strip(),
        'options': [o.strip() for o in options],
        'correctIndex': correct_index,
        'seconds': seconds,
        'difficulty': difficulty,
        'category': category.strip(),
    }


def load_questions(question_ids=None, category=None, difficulty=None, limit=None):
    """Read a game's question sequence from the bank.

    Explicit ``question_ids`` keep the caller's order; otherwise questions
    matching the filters are taken in creation order.
    """
    if question_ids:
        rows = Question.query.filter(Question.id.in_(question_ids)).all()
        by_id = {q.id: q for q in rows}
        missing = [qid for qid in question_ids if qid not in by_id]
        if missing:
            raise NotFoundError(f'Unknown question ids: {missing}')
        ordered = [by_id[qid] for qid in question_ids]
    else:
        query = Question.query
        if category:
            query = query.filter(db.func.lower(Question.category) == category.lower())
        if difficulty:
            query = query.filter_by(difficulty=difficulty)
        query = query.order_by(Question.id)
        if limit:
            query = query.limit(limit)
        ordered = query.all()
    return [q.to_spec() for q in ordered]
