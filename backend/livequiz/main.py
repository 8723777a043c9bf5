from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from livequiz import db
from livequiz.models import User

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Live quiz server is running!'})

@main.route('/users/add', methods=['POST'])
def add_user():
    data = request.get_json(silent=True)
    if not data or not 'username' in data or not 'password' in data:
        return jsonify({'error': 'Missing username or password', 'kind': 'ValidationError'}), 400

    if User.query.filter_by(username=data['username']).first():
        return jsonify({'error': 'Username already exists', 'kind': 'ValidationError'}), 400

    user = User(username=data['username'])
    user.set_password(data['password'])
    db.session.add(user)
    db.session.commit()

    return jsonify({'message': 'User created successfully', 'user': user.to_dict()}), 201

@main.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user, remember=True)
        return jsonify({'message': 'Logged in successfully.', 'user': user.to_dict()})
    return jsonify({'error': 'Invalid username or password', 'kind': 'Unauthorized'}), 401

@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})

@main.route('/me')
@login_required
def me():
    return jsonify(current_user.to_dict())
