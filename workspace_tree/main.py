import logging
from typing import Any

from flask import Flask, Response, jsonify, request

from workspace_tree.config import AppConfig, load_config, setup_logging
from workspace_tree.errors import ConflictError, ImportLimitError, NotFoundError, ValidationError, WorkspaceError
from workspace_tree.flat import coerce_records, forest_to_nested, hydrate_by_parent
from workspace_tree.importers import TarballSource, collect_records
from workspace_tree.reconcile import replace_project_files, update_project_files
from workspace_tree.store import FileStore, StoredEntry

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    ImportLimitError: 413,
}


def create_app(config: AppConfig | None = None, store: FileStore | None = None) -> Flask:
    app = Flask(__name__)
    config = config or load_config()
    setup_logging(config.log_level)
    app.config["MAX_CONTENT_LENGTH"] = config.max_upload_mb * 1024 * 1024
    store = store or FileStore(config.database_url)
    app.extensions["file_store"] = store

    @app.errorhandler(WorkspaceError)
    def handle_workspace_error(exc: WorkspaceError) -> tuple[Response, int]:
        status = next((code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)), 500)
        if status >= 500:
            logger.error("Unhandled workspace error: %s", exc)
        return jsonify({"message": str(exc)}), status

    def json_body() -> dict[str, Any]:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        return payload

    def project_payload(project_id: str, files: list[StoredEntry] | None = None) -> dict[str, Any]:
        project = store.get_project(project_id)
        if files is None:
            files = store.list_entries(project_id)
        return {"project": project.to_dict(), "files": [entry.to_dict() for entry in files]}

    @app.get("/api/v1/projects")
    def list_projects() -> Response:
        return jsonify([project.to_dict() for project in store.list_projects()])

    @app.post("/api/v1/projects")
    def create_project() -> tuple[Response, int]:
        payload = json_body()
        files = payload.get("files")
        if files is not None and not isinstance(files, list):
            raise ValidationError("files must be an array")
        project = store.create_project(payload.get("name") or "")
        records = coerce_records(files) if files is not None else config.template(payload.get("template")).records()
        try:
            synced = replace_project_files(store, project.id, records, config.reconcile_strategy)
        except WorkspaceError:
            store.delete_project(project.id)
            raise
        return jsonify(project_payload(project.id, synced)), 201

    @app.post("/api/v1/projects/import")
    def import_project() -> tuple[Response, int]:
        upload = request.files.get("archive")
        if not upload:
            raise ValidationError("No archive uploaded")
        records = collect_records(
            TarballSource(upload.stream),
            max_files=config.import_max_files,
            max_bytes=config.import_max_bytes,
        )
        name = request.form.get("name") or (upload.filename or "imported").split(".")[0]
        project = store.create_project(name, provider="archive", remote_url=request.form.get("remoteUrl"))
        try:
            synced = replace_project_files(store, project.id, records, config.reconcile_strategy)
        except WorkspaceError:
            store.delete_project(project.id)
            raise
        return jsonify(project_payload(project.id, synced)), 201

    @app.get("/api/v1/projects/<project_id>")
    def get_project(project_id: str) -> Response:
        return jsonify(project_payload(project_id))

    @app.get("/api/v1/projects/<project_id>/tree")
    def get_project_tree(project_id: str) -> Response:
        forest = hydrate_by_parent(store.list_entries(project_id))
        return jsonify({"project": store.get_project(project_id).to_dict(), "tree": forest_to_nested(forest)})

    @app.put("/api/v1/projects/<project_id>")
    def update_project(project_id: str) -> Response:
        payload = json_body()
        files = payload.get("files")
        if files is not None and not isinstance(files, list):
            raise ValidationError("files must be an array")
        name = payload.get("name")
        if name is not None and not isinstance(name, str):
            raise ValidationError("name must be a string")
        project, synced = update_project_files(store, project_id, name, files, config.reconcile_strategy)
        return jsonify({"project": project.to_dict(), "files": [entry.to_dict() for entry in synced]})

    @app.delete("/api/v1/projects/<project_id>")
    def delete_project(project_id: str) -> tuple[str, int]:
        store.delete_project(project_id)
        return "", 204

    @app.post("/api/v1/files")
    def create_file_entry() -> tuple[Response, int]:
        payload = json_body()
        if not payload.get("projectId") or not payload.get("name") or not payload.get("type"):
            raise ValidationError("projectId, name, and type are required")
        entry = store.create_entry(
            project_id=payload["projectId"],
            parent_id=payload.get("parentId"),
            name=payload["name"],
            entry_type=payload["type"],
            content=payload.get("content"),
        )
        return jsonify(entry.to_dict()), 201

    @app.patch("/api/v1/files/<entry_id>")
    def update_file_entry(entry_id: str) -> Response:
        payload = json_body()
        content = payload.get("content")
        entry = store.update_entry(
            entry_id,
            name=payload.get("name") or None,
            content=content if isinstance(content, str) else None,
        )
        return jsonify(entry.to_dict())

    @app.delete("/api/v1/files/<entry_id>")
    def delete_file_entry(entry_id: str) -> tuple[str, int]:
        store.delete_entry(entry_id)
        return "", 204

    return app


if __name__ == "__main__":
    flask_app = create_app()
    flask_app.run(host="0.0.0.0", port=8000)
