from __future__ import annotations

import bcrypt
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from gateflow.services.base import UnauthorizedError, ValidationError
from gateflow.utils.http import json_body
from gateflow.utils.timeutil import isoformat, utcnow
from gateflow.utils.validators import sanitize_string, validate_email


def create_auth_blueprint(*, admin_user_repo, limiter, csrf, logger):
    """Create admin session routes."""
    blueprint = Blueprint('auth', __name__)

    @blueprint.route('/api/login', methods=['POST'])
    @limiter.limit('10 per minute')
    def api_login():
        """Start an admin session."""
        if current_user.is_authenticated:
            return jsonify({'data': current_user.to_dict()})

        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = request.form
        email = data.get('email', '')
        password = data.get('password', '')
        if not isinstance(email, str) or not isinstance(password, str):
            raise ValidationError('Email and password must be strings')
        email = sanitize_string(email, max_length=255).lower()
        if not email or not password:
            raise ValidationError('Email and password are required')
        valid, error = validate_email(email)
        if not valid:
            raise ValidationError(error, details={'field': 'email'})

        found = admin_user_repo.get_for_login(email)
        if not found or not bcrypt.checkpw(password.encode('utf-8'), found[1].encode('utf-8')):
            logger.warning(f"Failed login attempt for {email}")
            raise UnauthorizedError('Invalid email or password')

        user, _ = found
        admin_user_repo.update_last_login(user.id, isoformat(utcnow()))
        login_user(user)
        logger.info(f"Admin {email} logged in")
        return jsonify({'data': user.to_dict()})

    csrf.exempt(api_login)

    @blueprint.route('/api/logout', methods=['POST'])
    def api_logout():
        if not current_user.is_authenticated:
            return jsonify({'data': {'success': True}})
        email = current_user.email
        logout_user()
        logger.info(f"Admin {email} logged out")
        return jsonify({'data': {'success': True}})

    csrf.exempt(api_logout)

    @blueprint.route('/api/user', methods=['GET'])
    @login_required
    def get_current_user():
        return jsonify({'data': current_user.to_dict()})

    @blueprint.route('/api/csrf-token', methods=['GET'])
    @login_required
    def get_csrf_token():
        """Token to send as X-CSRFToken on mutating session requests."""
        return jsonify({'data': {'csrf_token': generate_csrf()}})

    @blueprint.route('/api/user/change-password', methods=['POST'])
    @login_required
    def change_password():
        """Change current admin's password."""
        data = json_body()
        current_password = data.get('current_password', '')
        new_password = data.get('new_password', '')
        confirm_password = data.get('confirm_password', '')

        passwords = (current_password, new_password, confirm_password)
        if not all(isinstance(value, str) for value in passwords):
            raise ValidationError('Passwords must be strings')
        if not all(passwords):
            raise ValidationError('All fields are required')
        if new_password != confirm_password:
            raise ValidationError('New passwords do not match')
        if len(new_password) < 8:
            raise ValidationError('New password must be at least 8 characters')

        password_hash = admin_user_repo.get_password_hash(current_user.id)
        if not password_hash or not bcrypt.checkpw(current_password.encode('utf-8'), password_hash.encode('utf-8')):
            raise ValidationError('Current password is incorrect')

        new_hash = bcrypt.hashpw(new_password.encode('utf-8'), bcrypt.gensalt())
        admin_user_repo.update_password(current_user.id, new_hash.decode('utf-8'))
        logger.info(f"Admin {current_user.email} changed their password")
        return jsonify({'data': {'success': True, 'message': 'Password changed successfully'}})

    return blueprint
