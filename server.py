#!/usr/bin/env python3
"""HTTP transport for the generation pipeline."""

import logging
import os

from flask import Flask, jsonify, request

from core.orchestrator import PipelineOrchestrator
from core.state import PipelineRequest
from utils.baseline_store import list_baselines

logger = logging.getLogger(__name__)

app = Flask(__name__)
orchestrator = PipelineOrchestrator()


def status_for(payload):
    """HTTP status for a failure payload."""
    kind = payload["error_kind"]
    if kind == "TransientOverload":
        return 503
    if kind == "Cancelled":
        return 409
    if kind == "ValidationFailure" and payload["failing_stage"] == "init":
        return 400
    return 500


@app.route("/api/health")
def api_health():
    return jsonify({"status": "ok"})


@app.route("/api/templates")
def api_templates():
    return jsonify(list_baselines())


@app.route("/api/generate", methods=["POST"])
async def api_generate():
    """Run the full pipeline for one request and return the artifact with every stage output."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "error_kind": "ValidationFailure",
                        "failing_stage": None, "message": "Request body must be a JSON object"}), 400

    req = PipelineRequest.from_dict(data)
    if not req.user_prompt:
        return jsonify({"success": False, "error_kind": "ValidationFailure",
                        "failing_stage": None, "message": "Missing userPrompt"}), 400

    result = await orchestrator.execute(req)
    if not result["success"]:
        logger.warning("[server] generate failed: %s at %s",
                       result["error_kind"], result["failing_stage"])
        return jsonify(result), status_for(result)
    return jsonify(result)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    port = int(os.environ.get("PORT", 5001))
    print(f"Tool Surgeon running at http://localhost:{port}")
    app.run(debug=False, port=port)
