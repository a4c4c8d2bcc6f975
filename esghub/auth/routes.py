import re
import logging

from flask import Blueprint, jsonify, request
from flask_login import login_user, logout_user, login_required, current_user

from esghub import db
from esghub.models import User

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

MIN_PASSWORD_LENGTH = 8


def _validate_password(password):
    """Check password meets minimum strength requirements."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"A senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres."
    if not re.search(r'[A-Za-z]', password):
        return "A senha deve conter pelo menos uma letra."
    if not re.search(r'[0-9]', password):
        return "A senha deve conter pelo menos um número."
    return None


def _payload():
    """Accept both JSON bodies and classic form posts."""
    return request.get_json(silent=True) or request.form.to_dict()


def _admin_only():
    if not current_user.is_admin:
        return jsonify({"error": "Acesso negado."}), 403
    return None


@auth_bp.route("/login", methods=["POST"])
def login():
    data = _payload()
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    user = User.query.filter_by(username=username).first()
    if user and user.check_password(password):
        login_user(user)
        logger.info(f"User {user.username} logged in")
        return jsonify(user.to_dict())
    logger.warning(f"Failed login for '{username}'")
    return jsonify({"error": "Usuário ou senha inválidos."}), 401


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify(current_user.to_dict())


@auth_bp.route("/change-password", methods=["POST"])
@login_required
def change_password():
    data = _payload()
    current_pw = data.get("current_password") or ""
    new_pw = data.get("new_password") or ""

    if not current_user.check_password(current_pw):
        return jsonify({"error": "Senha atual incorreta."}), 400
    pw_error = _validate_password(new_pw)
    if pw_error:
        return jsonify({"error": pw_error}), 400

    current_user.set_password(new_pw)
    db.session.commit()
    return jsonify({"success": True})


@auth_bp.route("/users")
@login_required
def user_list():
    denied = _admin_only()
    if denied:
        return denied
    users = (
        User.query.filter_by(company_id=current_user.company_id)
        .order_by(User.created_at.desc())
        .all()
    )
    return jsonify([u.to_dict() for u in users])


@auth_bp.route("/users", methods=["POST"])
@login_required
def create_user():
    denied = _admin_only()
    if denied:
        return denied

    data = _payload()
    username = (data.get("username") or "").strip()
    email = (data.get("email") or "").strip()
    full_name = (data.get("full_name") or "").strip()
    role = data.get("role") or "member"
    password = data.get("password") or ""

    if not username or not email or not password or not full_name:
        return jsonify({"error": "Preencha todos os campos obrigatórios."}), 400
    if role not in ("admin", "member"):
        return jsonify({"error": f"Perfil inválido: {role}"}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({"error": "Nome de usuário já existe."}), 400
    if User.query.filter_by(email=email).first():
        return jsonify({"error": "E-mail já cadastrado."}), 400
    pw_error = _validate_password(password)
    if pw_error:
        return jsonify({"error": pw_error}), 400

    user = User(
        username=username,
        email=email,
        full_name=full_name,
        role=role,
        company_id=current_user.company_id,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    logger.info(f"User '{username}' created by {current_user.username}")
    return jsonify(user.to_dict()), 201
