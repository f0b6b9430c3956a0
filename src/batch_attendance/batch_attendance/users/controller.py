from __future__ import annotations

import logging
from datetime import timedelta

from flask import Flask, jsonify, request, session

from ..container import Container
from ..core.exceptions import DomainError

logger = logging.getLogger(__name__)


def register(app: Flask, container: Container) -> None:
    @app.route("/api/auth/login", methods=["POST"], endpoint="login")
    def login():
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            body = {}
        try:
            s_user = container.auth_service.authenticate(body.get("username", ""), body.get("password", ""))
        except DomainError as e:
            return jsonify({"success": False, "message": str(e)}), e.http_status
        except Exception as e:
            logger.exception("Login failed unexpectedly")
            message = "Internal server error during login"
            if bool(app.config.get("DEBUG", False)):
                message = f"{message}: {e}"
            return jsonify({"success": False, "message": message}), 500

        session.clear()
        session.permanent = bool(body.get("remember_me"))
        app.permanent_session_lifetime = timedelta(days=7)

        session["user_id"] = s_user.user_id
        session["name"] = s_user.full_name
        session["role"] = s_user.role.value
        session["batch_id"] = s_user.batch_id

        logger.info("User %s logged in", s_user.user_id)
        return jsonify(
            {
                "success": True,
                "message": "Logged in",
                "data": {
                    "user_id": s_user.user_id,
                    "full_name": s_user.full_name,
                    "role": s_user.role.value,
                    "batch_id": s_user.batch_id,
                },
            }
        )

    @app.route("/api/auth/logout", methods=["POST"], endpoint="logout")
    def logout():
        session.clear()
        return jsonify({"success": True, "message": "Logged out"})
