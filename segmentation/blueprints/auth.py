import logging

import click
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from ..extensions import bcrypt, db, login_manager
from ..models import User

logger = logging.getLogger(__name__)
auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth", cli_group=None)


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "Authentication required"}), 401


def create_user(username, password, is_admin=True):
    """Creates a user with a bcrypt password hash and commits it."""
    password_hash = bcrypt.generate_password_hash(password).decode("utf-8")
    user = User(username=username, password_hash=password_hash, is_admin=is_admin)
    db.session.add(user)
    db.session.commit()
    return user


@auth_bp.cli.command("create-admin")
@click.argument("username")
@click.password_option()
def create_admin_command(username, password):
    """Creates an administrator allowed to edit segment rules."""
    username = username.strip()
    if User.query.filter_by(username=username).first():
        raise click.ClickException(f"User {username} already exists")
    create_user(username, password, is_admin=True)
    logger.info("Created administrator %s", username)
    click.echo(f"Created administrator {username}")


@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True)
    if not data or not data.get("username") or not data.get("password"):
        return jsonify({"error": "Missing username or password"}), 400

    user = User.query.filter_by(username=data["username"]).first()
    if user and bcrypt.check_password_hash(user.password_hash, data["password"]):
        login_user(user, remember=True)
        logger.info("User logged in: %s", user.username)
        return jsonify(user.to_dict()), 200

    logger.warning("Failed login attempt for %s", data["username"])
    return jsonify({"error": "Invalid username or password"}), 401


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    username = current_user.username
    logout_user()
    logger.info("User logged out: %s", username)
    return jsonify({"message": "Logged out successfully"}), 200


@auth_bp.route("/me", methods=["GET"])
def me():
    if current_user.is_authenticated:
        return jsonify(current_user.to_dict()), 200
    return jsonify({"error": "Not authenticated"}), 401
