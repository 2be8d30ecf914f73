"""
Flask JSON API over the alert manager.

API endpoints:
  GET    /api/status                          - System status and notification stats
  GET    /api/activity?limit=10               - Recent alerts + notifications with summary counts
  GET    /api/rules                           - All alert rules
  POST   /api/rules            {"text": ...}  - Create a rule from natural language
  POST   /api/rules/<id>/toggle {"enabled"}   - Enable/disable a rule
  DELETE /api/rules/<id>                      - Remove a rule
  POST   /api/alerts/check                    - Evaluate all rules now
  GET    /api/alerts?limit=50                 - Alert history
  POST   /api/alerts/<id>/ack                 - Acknowledge an alert
  POST   /api/alerts/<id>/resolve             - Resolve an alert
  GET    /api/notifications?limit=20&unread=1 - In-app notifications
  POST   /api/notifications/<id>/read         - Mark notification read
  POST   /api/notifications/<id>/dismiss      - Dismiss notification

Started via: python main.py serve [--port 5000] [--host 127.0.0.1]
"""
import logging

from flask import Flask, jsonify, request

logger = logging.getLogger("stockalert.web.app")


def _int_arg(name, default):
    try:
        return max(0, int(request.args.get(name, default)))
    except (TypeError, ValueError):
        return default


def _flag_arg(name):
    return request.args.get(name, "").lower() in ("1", "true", "yes")


def create_app(manager) -> Flask:
    """
    Factory function. Receives an initialized AlertManager from main.py / wsgi.py.
    """
    app = Flask(__name__)

    def not_found(kind, item_id):
        return jsonify({"error": f"{kind} not found: {item_id}"}), 404

    # ─── Status ──────────────────────────────────────────

    @app.route("/api/status")
    def api_status():
        return jsonify(manager.get_system_status())

    @app.route("/api/activity")
    def api_activity():
        activity = manager.get_recent_activity(_int_arg("limit", 10))
        return jsonify({
            "alerts": [a.to_dict() for a in activity["alerts"]],
            "notifications": [n.to_dict() for n in activity["notifications"]],
            "summary": activity["summary"],
        })

    # ─── Rules ───────────────────────────────────────────

    @app.route("/api/rules", methods=["GET"])
    def api_rules():
        return jsonify([r.to_dict() for r in manager.get_all_alert_rules()])

    @app.route("/api/rules", methods=["POST"])
    def api_create_rule():
        body = request.get_json(silent=True) or {}
        text = body.get("text", "")
        if not text:
            return jsonify({"success": False, "message": "Missing 'text'"}), 400
        result = manager.create_alert_from_natural_language(text)
        if not result["success"]:
            return jsonify(result), 422
        return jsonify({**result, "rule": result["rule"].to_dict()}), 201

    @app.route("/api/rules/<rule_id>/toggle", methods=["POST"])
    def api_toggle_rule(rule_id):
        body = request.get_json(silent=True) or {}
        enabled = body.get("enabled")
        if not isinstance(enabled, bool):
            return jsonify({"error": "'enabled' must be true or false"}), 400
        rule = manager.toggle_alert_rule(rule_id, enabled)
        if rule is None:
            return not_found("rule", rule_id)
        return jsonify(rule.to_dict())

    @app.route("/api/rules/<rule_id>", methods=["DELETE"])
    def api_remove_rule(rule_id):
        if not manager.remove_alert_rule(rule_id):
            return not_found("rule", rule_id)
        return jsonify({"success": True})

    # ─── Alerts ──────────────────────────────────────────

    @app.route("/api/alerts/check", methods=["POST"])
    def api_check():
        result = manager.check_alerts_now()
        return jsonify({
            "success": result["success"],
            "message": result["message"],
            "triggered": [a.to_dict() for a in result["triggered"] or []],
        })

    @app.route("/api/alerts")
    def api_alerts():
        return jsonify([a.to_dict() for a in manager.get_alert_history(_int_arg("limit", 50))])

    @app.route("/api/alerts/<alert_id>/ack", methods=["POST"])
    def api_ack(alert_id):
        alert = manager.acknowledge_alert(alert_id)
        if alert is None:
            return not_found("alert", alert_id)
        return jsonify(alert.to_dict())

    @app.route("/api/alerts/<alert_id>/resolve", methods=["POST"])
    def api_resolve(alert_id):
        alert = manager.resolve_alert(alert_id)
        if alert is None:
            return not_found("alert", alert_id)
        return jsonify(alert.to_dict())

    # ─── Notifications ───────────────────────────────────

    @app.route("/api/notifications")
    def api_notifications():
        notifications = manager.get_in_app_notifications(_int_arg("limit", 20), _flag_arg("unread"))
        return jsonify([n.to_dict() for n in notifications])

    @app.route("/api/notifications/<notification_id>/read", methods=["POST"])
    def api_read(notification_id):
        notif = manager.mark_notification_as_read(notification_id)
        if notif is None:
            return not_found("notification", notification_id)
        return jsonify(notif.to_dict())

    @app.route("/api/notifications/<notification_id>/dismiss", methods=["POST"])
    def api_dismiss(notification_id):
        notif = manager.dismiss_notification(notification_id)
        if notif is None:
            return not_found("notification", notification_id)
        return jsonify(notif.to_dict())

    return app
