"""Flask JSON API for VoxShop.

Exposes the shopping session over HTTP for a browser or mobile front end.
The front end owns speech recognition and synthesis; it posts final
transcripts to ``/api/commands`` and renders the returned state and
feedback. Every mutating endpoint responds with the feedback message and
the updated state snapshot.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from flask import Flask, abort, jsonify, request

from voxshop import list_engine
from voxshop.config import Config
from voxshop.exporter import ExportFormat
from voxshop.models import Category, MoveDirection, Severity, TodoFilter
from voxshop.session import ShoppingSession
from voxshop.storage import SqliteStore

if TYPE_CHECKING:
    from werkzeug.wrappers import Response

    from voxshop.models import Feedback
    from voxshop.storage import KeyValueStore

logger = logging.getLogger(__name__)

EXTENSION_KEY = "voxshop"


def create_app(
    db_path: str = "voxshop.db",
    *,
    store: KeyValueStore | None = None,
    config: Config | None = None,
) -> Flask:
    """Create and configure the Flask application.

    Args:
        db_path: Path to the SQLite database file, used when no store is
            given.
        store: Optional key-value store, e.g. a MemoryStore for tests.
        config: Application configuration; defaults apply when None.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)
    app.config["DATABASE_PATH"] = db_path

    cfg = config or Config(database_path=db_path)
    backing_store = store if store is not None else SqliteStore(db_path)
    app.extensions[EXTENSION_KEY] = ShoppingSession(backing_store, cfg)

    _register_error_handlers(app)
    _register_routes(app)

    return app


def _session() -> ShoppingSession:
    """Return the shopping session of the current app."""
    from flask import current_app

    session: ShoppingSession = current_app.extensions[EXTENSION_KEY]
    return session


def _json_body() -> dict[str, Any]:
    """Return the request's JSON object body, aborting with 400 otherwise."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Invalid JSON")
    return data


def _required_text(data: dict[str, Any], field: str) -> str:
    """Return a string field from a JSON body, aborting with 400 if absent."""
    value = data.get(field)
    if not isinstance(value, str):
        abort(400, description=f"Missing {field}")
    return value


def _state_payload() -> dict[str, Any]:
    """Serialize the current state with derived counts and grouping."""
    session = _session()
    counts = session.counts
    payload = session.state.to_json_data()
    payload["activeList"] = (
        session.state.active_list.to_json_data()
        if session.state.active_list is not None
        else None
    )
    payload["counts"] = {
        "active": counts.active,
        "completed": counts.completed,
        "total": counts.total,
    }
    payload["groups"] = {
        category: [item.id for item in items]
        for category, items in session.grouped_items().items()
    }
    payload["moveMeta"] = {
        item_id: {"index": index, "total": total}
        for item_id, (index, total) in list_engine.move_meta(
            session.visible_items
        ).items()
    }
    return payload


def _respond(feedback: Feedback | None) -> tuple[Response, int]:
    """Build the standard response for a mutating endpoint.

    Validation problems answer 422 and unknown targets 404, each still
    carrying the unchanged state.
    """
    status = 200
    if feedback is not None and feedback.severity is Severity.ERROR:
        status = 404
    elif (
        feedback is not None
        and feedback.severity is Severity.WARNING
        and not feedback.title
    ):
        status = 422
    body = {
        "feedback": feedback.to_json_data() if feedback is not None else None,
        "state": _state_payload(),
    }
    return jsonify(body), status


def _register_error_handlers(app: Flask) -> None:
    """Register JSON error handlers.

    Args:
        app: Flask application instance.
    """

    @app.errorhandler(400)
    def bad_request(error: Exception) -> tuple[Response, int]:
        """Handle 400 Bad Request errors.

        Args:
            error: The exception that triggered the error.

        Returns:
            Tuple of JSON error body and HTTP status code.
        """
        message = getattr(error, "description", None) or "Bad Request"
        return jsonify({"error": message}), 400

    @app.errorhandler(404)
    def not_found(error: Exception) -> tuple[Response, int]:
        """Handle 404 Not Found errors.

        Args:
            error: The exception that triggered the error.

        Returns:
            Tuple of JSON error body and HTTP status code.
        """
        return jsonify({"error": "Not Found"}), 404

    @app.errorhandler(500)
    def server_error(error: Exception) -> tuple[Response, int]:
        """Handle 500 Internal Server Error.

        Args:
            error: The exception that triggered the error.

        Returns:
            Tuple of JSON error body and HTTP status code.
        """
        logger.error("Unhandled error: %s", error)
        return jsonify({"error": "Internal Server Error"}), 500


def _register_routes(app: Flask) -> None:
    """Register all application routes.

    Args:
        app: Flask application instance.
    """
    _register_state_routes(app)
    _register_item_routes(app)
    _register_list_routes(app)
    _register_staple_routes(app)
    _register_preference_routes(app)


def _register_state_routes(app: Flask) -> None:
    """Register state, command, suggestion and export routes.

    Args:
        app: Flask application instance.
    """

    @app.route("/api/state")
    def get_state() -> Response:
        """Return the current state snapshot.

        Returns:
            JSON state payload.
        """
        return jsonify(_state_payload())

    @app.route("/api/commands", methods=["POST"])
    def run_command() -> tuple[Response, int]:
        """Apply a spoken or typed command.

        Expects JSON body with a ``transcript`` field.

        Returns:
            JSON feedback and state. Unrecognized commands still answer 200
            with a warning.
        """
        transcript = _required_text(_json_body(), "transcript")
        feedback = _session().handle_transcript(transcript)
        body = {"feedback": feedback.to_json_data(), "state": _state_payload()}
        return jsonify(body), 200

    @app.route("/api/suggestions")
    def suggestions() -> Response:
        """Return autocomplete matches and a did-you-mean correction.

        Expects query parameter ``q``.

        Returns:
            JSON with ``matches`` and ``didYouMean``.
        """
        query = request.args.get("q", "")
        session = _session()
        correction = session.did_you_mean(query)
        return jsonify(
            {
                "matches": [m.to_json_data() for m in session.suggestions(query)],
                "didYouMean": correction.to_json_data() if correction else None,
            }
        )

    @app.route("/api/quick-add")
    def quick_add() -> Response:
        """Return the recent and frequent quick-add shortcuts.

        Returns:
            JSON object of section title to history entries.
        """
        return jsonify(
            {
                title: [entry.to_json_data() for entry in entries]
                for title, entries in _session().quick_add().items()
            }
        )

    @app.route("/api/export")
    def export() -> tuple[Response, int]:
        """Export the active list.

        Query parameters: ``format`` (plain, markdown, json) and
        ``includeChecked`` (true/false, default true).

        Returns:
            JSON with the rendered ``content``.
        """
        raw_format = request.args.get("format", ExportFormat.PLAIN.value)
        try:
            fmt = ExportFormat(raw_format)
        except ValueError:
            abort(400, description=f"Invalid format: {raw_format}")
        include_checked = request.args.get("includeChecked", "true").lower() != "false"
        content = _session().export(fmt, include_checked)
        return jsonify({"format": fmt.value, "content": content}), 200

    @app.route("/api/data", methods=["DELETE"])
    def clear_data() -> tuple[Response, int]:
        """Delete all local data.

        Returns:
            JSON feedback and the fresh state.
        """
        return _respond(_session().clear_all_data())


def _register_item_routes(app: Flask) -> None:
    """Register item routes for the active list.

    Args:
        app: Flask application instance.
    """

    @app.route("/api/items", methods=["POST"])
    def add_item() -> tuple[Response, int]:
        """Add an item from free text.

        Expects JSON body with a ``text`` field.

        Returns:
            JSON feedback and state.
        """
        text = _required_text(_json_body(), "text")
        return _respond(_session().add_text(text))

    @app.route("/api/items/<item_id>", methods=["PATCH"])
    def edit_item(item_id: str) -> tuple[Response, int]:
        """Edit an item's text and optionally pin its category.

        Expects JSON body with ``text`` and optional ``category`` (a
        category value or ``auto``).

        Returns:
            JSON feedback and state.
        """
        data = _json_body()
        text = _required_text(data, "text")
        raw_category = data.get("category", "auto")
        if raw_category == "auto":
            category: list_engine.CategorySelection = "auto"
        else:
            try:
                category = Category(raw_category)
            except ValueError:
                abort(400, description=f"Invalid category: {raw_category}")
        return _respond(_session().edit_item(item_id, text, category))

    @app.route("/api/items/<item_id>", methods=["DELETE"])
    def delete_item(item_id: str) -> tuple[Response, int]:
        """Delete an item.

        Returns:
            JSON feedback and state.
        """
        return _respond(_session().delete_item(item_id))

    @app.route("/api/items/<item_id>/toggle", methods=["POST"])
    def toggle_item(item_id: str) -> tuple[Response, int]:
        """Toggle an item between needed and picked up.

        Returns:
            JSON feedback and state.
        """
        return _respond(_session().toggle_item(item_id))

    @app.route("/api/items/<item_id>/move", methods=["POST"])
    def move_item(item_id: str) -> tuple[Response, int]:
        """Move an item within its local group.

        Expects JSON body with ``direction`` (up or down).

        Returns:
            JSON feedback and state.
        """
        direction = _required_text(_json_body(), "direction")
        if direction not in {d.value for d in MoveDirection}:
            abort(400, description=f"Invalid direction: {direction}")
        return _respond(_session().move_item(item_id, direction))

    @app.route("/api/items/complete-all", methods=["POST"])
    def complete_all() -> tuple[Response, int]:
        """Mark every item as picked up.

        Returns:
            JSON feedback and state.
        """
        return _respond(_session().mark_all_complete())

    @app.route("/api/items/completed", methods=["DELETE"])
    def clear_completed() -> tuple[Response, int]:
        """Remove every picked-up item.

        Returns:
            JSON feedback and state.
        """
        return _respond(_session().clear_completed())

    @app.route("/api/items", methods=["DELETE"])
    def delete_all() -> tuple[Response, int]:
        """Remove every item from the active list.

        Returns:
            JSON feedback and state.
        """
        return _respond(_session().delete_all())


def _register_list_routes(app: Flask) -> None:
    """Register list-collection routes.

    Args:
        app: Flask application instance.
    """

    @app.route("/api/lists", methods=["POST"])
    def create_list() -> tuple[Response, int]:
        """Create a list and make it active.

        Expects JSON body with a ``name`` field.

        Returns:
            JSON feedback and state.
        """
        name = _required_text(_json_body(), "name")
        return _respond(_session().create_list(name))

    @app.route("/api/lists/<list_id>", methods=["PATCH"])
    def rename_list(list_id: str) -> tuple[Response, int]:
        """Rename a list.

        Expects JSON body with a ``name`` field.

        Returns:
            JSON feedback and state.
        """
        name = _required_text(_json_body(), "name")
        return _respond(_session().rename_list(list_id, name))

    @app.route("/api/lists/<list_id>", methods=["DELETE"])
    def delete_list(list_id: str) -> tuple[Response, int]:
        """Delete a list.

        Returns:
            JSON feedback and state.
        """
        return _respond(_session().delete_list(list_id))

    @app.route("/api/lists/<list_id>/activate", methods=["POST"])
    def switch_list(list_id: str) -> tuple[Response, int]:
        """Make a list active.

        Returns:
            JSON feedback and state.
        """
        return _respond(_session().switch_list(list_id))


def _register_staple_routes(app: Flask) -> None:
    """Register staple routes.

    Args:
        app: Flask application instance.
    """

    @app.route("/api/staples", methods=["POST"])
    def save_staple() -> tuple[Response, int]:
        """Save a staple from free text.

        Expects JSON body with a ``text`` field.

        Returns:
            JSON feedback and state.
        """
        text = _required_text(_json_body(), "text")
        return _respond(_session().save_staple(text))

    @app.route("/api/staples/<staple_id>", methods=["DELETE"])
    def remove_staple(staple_id: str) -> tuple[Response, int]:
        """Remove a staple.

        Returns:
            JSON feedback and state.
        """
        return _respond(_session().remove_staple(staple_id))

    @app.route("/api/staples/add-to-list", methods=["POST"])
    def add_staples() -> tuple[Response, int]:
        """Add every staple not already on the active list.

        Returns:
            JSON feedback and state.
        """
        return _respond(_session().add_all_staples())


def _register_preference_routes(app: Flask) -> None:
    """Register preference routes.

    Args:
        app: Flask application instance.
    """

    @app.route("/api/preferences", methods=["PATCH"])
    def update_preferences() -> tuple[Response, int]:
        """Update filter, spoken feedback and voice preferences.

        Expects JSON body with any of ``filter``, ``ttsEnabled`` and
        ``voicePreference``.

        Returns:
            JSON state.
        """
        data = _json_body()
        todo_filter = None
        if "filter" in data:
            try:
                todo_filter = TodoFilter(data["filter"])
            except ValueError as err:
                abort(400, description=str(err))
        if "ttsEnabled" in data and not isinstance(data["ttsEnabled"], bool):
            abort(400, description="ttsEnabled must be a boolean")

        # Nothing is applied until every field has been checked.
        session = _session()
        if todo_filter is not None:
            session.set_filter(todo_filter)
        if "ttsEnabled" in data:
            session.set_tts_enabled(data["ttsEnabled"])
        if "voicePreference" in data:
            session.set_voice_preference(str(data["voicePreference"]))
        return jsonify({"state": _state_payload()}), 200
