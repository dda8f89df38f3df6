from flask import Blueprint, jsonify, request
from livequiz import db
from livequiz.models import Question, validate_question
from livequiz.services.quiz.errors import ValidationError


questions = Blueprint('questions', __name__)


def _not_found():
    return jsonify({'error': 'Question not found'}), 404


@questions.route('', methods=['GET'])
def list_questions():
    query = Question.query
    category = request.args.get('category')
    if category:
        query = query.filter(db.func.lower(Question.category) == category.lower())
    difficulty = request.args.get('difficulty')
    if difficulty:
        query = query.filter_by(difficulty=difficulty)
    return jsonify([q.to_dict() for q in query.order_by(Question.id).all()])


@questions.route('/<int:question_id>', methods=['GET'])
def get_question(question_id):
    question = db.session.get(Question, question_id)
    if not question:
        return _not_found()
    return jsonify(question.to_dict())


@questions.route('', methods=['POST'])
def create_question():
    try:
        fields = validate_question(request.get_json(silent=True))
    except ValidationError as exc:
        return jsonify({'error': exc.message}), 400

    question = Question()
    question.apply(fields)
    db.session.add(question)
    db.session.commit()
    return jsonify(question.to_dict()), 201


@questions.route('/<int:question_id>', methods=['PUT'])
def update_question(question_id):
    question = db.session.get(Question, question_id)
    if not question:
        return _not_found()
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Expected a JSON object'}), 400
    # Fields left out keep their stored values
    merged = question.to_dict()
    merged.update(data)
    try:
        fields = validate_question(merged)
    except ValidationError as exc:
        return jsonify({'error': exc.message}), 400

    question.apply(fields)
    db.session.commit()
    # Running rooms keep the copy they took at creation
    return jsonify(question.to_dict())


@questions.route('/<int:question_id>', methods=['DELETE'])
def delete_question(question_id):
    question = db.session.get(Question, question_id)
    if not question:
        return _not_found()
    db.session.delete(question)
    db.session.commit()
    return jsonify({'message': 'Question deleted', 'id': question_id})
