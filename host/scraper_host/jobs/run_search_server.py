"""HTTP entrypoint exposing configuration, searches and result files to a local UI."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from flask import Flask, Response, jsonify, request

from scraper_host.core.config import get_settings
from scraper_host.core.config_locator import create_context
from scraper_host.core.service import ScraperService, SearchSession
from scraper_host.errors import (
    ConfigMissing,
    MalformedRow,
    NoWritableLocation,
    ScraperHostError,
    SearchInProgress,
    SpawnFailure,
    TooFewRows,
)
from scraper_host.models import OUTPUT_FORMATS, ProcessOutcome, SearchRequest, event_to_dict

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & service ----------
app = Flask(__name__)
_service: Optional[ScraperService] = None


def get_service() -> ScraperService:
    global _service
    if _service is None:
        _service = ScraperService(create_context())
    return _service


# ---------- Routes ----------


@app.get("/healthz")
def healthcheck() -> Any:
    service = get_service()
    return jsonify({"status": "ok", "busy": service.busy, "stage": service.status().kind}), 200


@app.get("/paths")
def output_directories() -> Any:
    return jsonify({"data": get_service().output_directories()}), 200


@app.get("/config")
def load_config() -> Any:
    return jsonify({"data": get_service().api_key_status()}), 200


@app.post("/config")
def save_config() -> Any:
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    api_key = payload.get("api_key")
    if not isinstance(api_key, str):
        return jsonify({"error": "api_key is required"}), 400

    try:
        location = get_service().save_config(api_key)
    except NoWritableLocation as exc:
        logger.error("Saving configuration failed: %s", exc.detail)
        return jsonify({**exc.to_dict(), "attempts": exc.attempts}), 500
    except ScraperHostError as exc:
        logger.error("Saving configuration failed: %s", exc.detail)
        return jsonify(exc.to_dict()), 500

    return jsonify({"data": {"config_dir": str(location.path)}}), 200


@app.post("/search")
def run_search() -> Any:
    """
    Run one search and stream newline-delimited JSON.
    Required JSON fields: keyword, location
    Optional: max_results (int), output_format, output_directory, enable_web_scraping (bool)
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    required = ("keyword", "location")
    missing = [f for f in required if not str(payload.get(f) or "").strip()]
    if missing:
        return jsonify({"error": f"missing fields: {', '.join(missing)}"}), 400

    try:
        max_results = int(payload.get("max_results", 20))
    except (TypeError, ValueError):
        return jsonify({"error": "max_results must be numeric"}), 400
    if max_results <= 0:
        return jsonify({"error": "max_results must be positive"}), 400

    output_format = str(payload.get("output_format") or "csv")
    if output_format not in OUTPUT_FORMATS:
        return jsonify({"error": f"output_format must be one of: {', '.join(OUTPUT_FORMATS)}"}), 400

    output_directory = payload.get("output_directory")
    search_request = SearchRequest(
        keyword=str(payload["keyword"]).strip(),
        location=str(payload["location"]).strip(),
        max_results=max_results,
        output_format=output_format,
        output_directory=Path(output_directory) if output_directory else None,
        enable_web_scraping=bool(payload.get("enable_web_scraping", True)),
    )

    try:
        session = get_service().start_search(search_request)
    except SearchInProgress as exc:
        return jsonify(exc.to_dict()), 409
    except ConfigMissing as exc:
        return jsonify(exc.to_dict()), 412

    logger.info("Starting search: %s", search_request)
    response = Response(_ndjson(session), mimetype="application/x-ndjson")
    response.call_on_close(session.close)
    return response


@app.post("/results")
def read_result_file() -> Any:
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    path = payload.get("path")
    if not path:
        return jsonify({"error": "path is required"}), 400

    try:
        records = get_service().read_result_file(Path(path))
    except FileNotFoundError:
        return jsonify({"error": "File not found"}), 404
    except (TooFewRows, MalformedRow) as exc:
        return jsonify(exc.to_dict()), 422
    except OSError as exc:
        logger.warning("Unable to read result file %s: %s", path, exc)
        return jsonify({"error": "Unable to read file", "detail": str(exc)}), 400

    return jsonify({"data": [record.to_dict() for record in records]}), 200


# ---------- Internals ----------


def _ndjson(session: SearchSession) -> Iterator[str]:
    try:
        for item in session:
            if isinstance(item, ProcessOutcome):
                line = {"type": "outcome", **item.to_dict()}
            else:
                line = {"type": "status", **event_to_dict(item)}
            yield json.dumps(line) + "\n"
    except SpawnFailure as exc:
        logger.error("Search could not start: %s", exc)
        yield json.dumps({"type": "error", **exc.to_dict(), "executable": exc.executable}) + "\n"


def main() -> None:
    settings = get_settings()
    logger.info("[BOOT] Binding on 127.0.0.1:%d", settings.server_port)
    try:
        app.run(host="127.0.0.1", port=settings.server_port, threaded=True)
    finally:
        if _service is not None:
            _service.context.close()


if __name__ == "__main__":
    main()
