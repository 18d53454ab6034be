import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from workspace_tree.flat import FlatRecord, records_from_files_map


@dataclass(frozen=True)
class TemplateConfig:
    template_id: str
    name: str
    files: dict[str, str] = field(default_factory=dict)

    def records(self) -> list[FlatRecord]:
        return records_from_files_map(self.files)


@dataclass(frozen=True)
class AppConfig:
    database_url: str
    max_upload_mb: int
    autosave_delay_ms: int
    history_limit: int
    import_max_files: int
    import_max_bytes: int
    reconcile_strategy: str
    log_level: str
    default_template: str
    templates: dict[str, TemplateConfig]

    @property
    def autosave_delay_seconds(self) -> float:
        return self.autosave_delay_ms / 1000

    def template(self, template_id: str | None = None) -> TemplateConfig:
        return self.templates.get(template_id or self.default_template) or DEFAULT_TEMPLATES["react"]


_PACKAGE_JSON = json.dumps(
    {
        "name": "workspace-sandbox",
        "version": "0.0.1",
        "private": True,
        "main": "src/main.jsx",
        "dependencies": {"react": "^18.2.0", "react-dom": "^18.2.0"},
    },
    indent=2,
)

DEFAULT_TEMPLATES = {
    "react": TemplateConfig(
        template_id="react",
        name="React starter",
        files={
            "src/App.jsx": (
                "export default function App() {\n"
                "  return <h1>Hello from your workspace</h1>;\n"
                "}\n"
            ),
            "src/main.jsx": (
                "import React from 'react';\n"
                "import ReactDOM from 'react-dom/client';\n"
                "import App from './App.jsx';\n"
                "import './index.css';\n\n"
                "ReactDOM.createRoot(document.getElementById('root')).render(<App />);\n"
            ),
            "src/index.css": "body {\n  margin: 0;\n  font-family: system-ui, sans-serif;\n}\n",
            "package.json": _PACKAGE_JSON,
        },
    ),
}


def _load_templates_config(path: Path) -> dict[str, TemplateConfig]:
    if not path.exists():
        return dict(DEFAULT_TEMPLATES)
    with path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    templates = {}
    for entry in payload.get("templates", []):
        template_id = entry.get("id")
        files = {
            item.get("path"): item.get("content") or ""
            for item in entry.get("files", [])
            if item.get("path")
        }
        if not template_id or not files:
            continue
        templates[template_id] = TemplateConfig(template_id=template_id, name=entry.get("name") or template_id, files=files)
    return templates or dict(DEFAULT_TEMPLATES)


def load_config() -> AppConfig:
    templates_config_path = Path(os.environ.get("TEMPLATES_CONFIG", "/config/templates.yaml"))
    templates = _load_templates_config(templates_config_path)
    return AppConfig(
        database_url=os.environ.get("DATABASE_URL", "sqlite:///workspace.db"),
        max_upload_mb=int(os.environ.get("MAX_UPLOAD_MB", "20")),
        autosave_delay_ms=int(os.environ.get("AUTOSAVE_DELAY_MS", "700")),
        history_limit=int(os.environ.get("HISTORY_LIMIT", "50")),
        import_max_files=int(os.environ.get("IMPORT_MAX_FILES", "1000")),
        import_max_bytes=int(os.environ.get("IMPORT_MAX_BYTES", str(20 * 1024 * 1024))),
        reconcile_strategy=os.environ.get("RECONCILE_STRATEGY", "replace").lower(),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        default_template=os.environ.get("DEFAULT_TEMPLATE", "react"),
        templates=templates,
    )


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    has_console = any(
        isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) is sys.stderr
        for handler in root.handlers
    )
    if not has_console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        root.addHandler(handler)
