"""
API layer for the payrecon audit trail.
Serves audit message ingestion and queries plus health and configuration
endpoints as a Flask app.

Run locally:
    flask --app "payrecon.api.app:create_app()" run
"""

import logging
import os
from datetime import datetime
from typing import Optional

from flask import Flask, request

from payrecon import __version__
from payrecon.core.audit.service import AuditTrailService
from payrecon.core.audit.store import InMemoryAuditStore, JsonlAuditStore
from payrecon.core.errors import AuditValidationError
from payrecon.core.logging_config import setup_logging
from payrecon.core.policies.models import PolicyTable
from payrecon.core.policies.registry import get_policy_table

# Configuration from environment
AUDIT_STORE_ENV = "PAYRECON_AUDIT_STORE"

logger = logging.getLogger(__name__)


def build_audit_service() -> AuditTrailService:
    """JSON-lines store when PAYRECON_AUDIT_STORE names a file, in-memory otherwise."""
    store_path = os.getenv(AUDIT_STORE_ENV)
    if store_path:
        return AuditTrailService(JsonlAuditStore(store_path))
    logger.warning(f"{AUDIT_STORE_ENV} not set; audit messages are kept in memory only")
    return AuditTrailService(InMemoryAuditStore())


def _parse_int(value: Optional[str], name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise AuditValidationError(f"{name} must be an integer, got {value!r}")


def create_app(
    audit_service: Optional[AuditTrailService] = None,
    policy_table: Optional[PolicyTable] = None,
    configure_logging: bool = True,
) -> Flask:
    """
    Build the Flask app.

    Args:
        audit_service: Service backing the audit endpoints (built from the
                       environment when omitted)
        policy_table: Contract reported by /config (cached default when omitted)
        configure_logging: Install the JSON log handler on the root logger
    """
    if configure_logging:
        setup_logging()

    service = audit_service or build_audit_service()
    policy = policy_table or get_policy_table()

    app = Flask(__name__)
    app.config["AUDIT_SERVICE"] = service
    app.config["POLICY_TABLE"] = policy

    @app.route('/audit/messages', methods=['POST'])
    def ingest_messages():
        """Append one batch of audit items (all or nothing)."""
        body = request.get_json(silent=True)
        if not isinstance(body, dict) or not isinstance(body.get('items'), list) or not body['items']:
            return {'error': 'items required'}, 400

        try:
            result = service.ingest(body['items'], step=body.get('step'), batch_id=body.get('batchId'))
        except AuditValidationError as e:
            logger.warning(f"Audit ingest rejected: {e}")
            return {'error': str(e)}, 400

        return result.to_dict(), 201

    @app.route('/audit/messages', methods=['GET'])
    def list_messages():
        """Flat (default) or grouped (?grouped=true) audit messages."""
        try:
            limit = _parse_int(request.args.get('limit'), 'limit')
            step_param = request.args.get('step')
            step = int(step_param) if step_param and step_param.strip().isdigit() else None
            grouped = (request.args.get('grouped') or 'false') == 'true'
            return service.query(limit=limit, step=step, grouped=grouped), 200
        except AuditValidationError as e:
            return {'error': str(e)}, 400

    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint."""
        return {
            'status': 'healthy',
            'service': 'payrecon',
            'version': __version__,
            'timestamp': datetime.now().isoformat()
        }, 200

    @app.route('/config', methods=['GET'])
    def get_configuration():
        """Returns the active policy contract metadata (no per-employee detail)."""
        config_info = policy.to_dict()
        config_info['audit_store'] = type(service.store).__name__
        return config_info, 200

    logger.info(f"payrecon API ready (contract v{policy.version}, store {type(service.store).__name__})")
    return app
