import logging
from functools import wraps

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ..constants import RULE_WRITE_RATE_LIMIT
from ..extensions import limiter, segment_registry
from ..models import SegmentProviderMatch
from ..providers import ConfigurableSegmentProvider

logger = logging.getLogger(__name__)
segments_bp = Blueprint("segments", __name__, url_prefix="/api/segments")

RULE_STRING_FIELDS = ("Key", "Value", "MatchExpression")
RULE_FLAG_FIELDS = ("Persist", "AllowedAsVariant")


def admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated or not current_user.is_admin:
            return jsonify({"error": "Admin privileges required"}), 403
        return f(*args, **kwargs)

    return decorated_function


def _configurable_provider(name):
    """Looks up a provider that stores rules.

    Returns:
        tuple: (provider, None) when found, or (None, error response).
    """
    if name not in segment_registry:
        return None, (jsonify({"error": f"Segment provider '{name}' not found"}), 404)
    provider = segment_registry.get(name)
    if not isinstance(provider, ConfigurableSegmentProvider):
        return None, (
            jsonify({"error": f"Segment provider '{name}' has no configurable rules"}),
            400,
        )
    return provider, None


def _parse_rules(data):
    """Validates the structure of a submitted rule set.

    Only types are checked; match expressions are stored as given.

    Returns:
        tuple: (list of SegmentProviderMatch, None) or (None, error message).
    """
    if not isinstance(data, list):
        return None, "Rules must be a JSON array"

    rules = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict):
            return None, f"Rule {index} must be a JSON object"
        for field in RULE_STRING_FIELDS:
            if entry.get(field) is not None and not isinstance(entry[field], str):
                return None, f"Rule {index}: '{field}' must be a string"
        for field in RULE_FLAG_FIELDS:
            if field in entry and not isinstance(entry[field], bool):
                return None, f"Rule {index}: '{field}' must be a boolean"
        rules.append(SegmentProviderMatch.from_dict(entry))
    return rules, None


@segments_bp.route("/providers", methods=["GET"])
def list_providers():
    """Returns the registered providers and how many rules each one has."""
    providers = []
    for provider in segment_registry:
        configurable = isinstance(provider, ConfigurableSegmentProvider)
        providers.append({
            "name": provider.name,
            "configurable": configurable,
            "rule_count": (len(provider.read_segment_configuration())
                           if configurable else 0),
        })
    return jsonify(providers), 200


@segments_bp.route("/providers/<name>/rules", methods=["GET"])
def get_rules(name):
    provider, error = _configurable_provider(name)
    if error:
        return error
    rules = provider.read_segment_configuration()
    return jsonify([rule.to_dict() for rule in rules]), 200


@segments_bp.route("/providers/<name>/rules", methods=["PUT"])
@login_required
@admin_required
@limiter.limit(RULE_WRITE_RATE_LIMIT)
def replace_rules(name):
    """Replaces a provider's whole rule set with the submitted JSON array."""
    provider, error = _configurable_provider(name)
    if error:
        return error

    data = request.get_json(silent=True)
    rules, message = _parse_rules(data)
    if message:
        return jsonify({"error": message}), 400

    provider.write_segment_configuration(rules)
    logger.info("Admin %s replaced %d segment rules for provider %s",
                current_user.username, len(rules), name)
    # Echo what a subsequent read returns, blank keys already dropped
    stored = provider.read_segment_configuration()
    return jsonify([rule.to_dict() for rule in stored]), 200


@segments_bp.route("/providers/<name>/variants", methods=["GET"])
def get_variants(name):
    if name not in segment_registry:
        return jsonify({"error": f"Segment provider '{name}' not found"}), 404
    provider = segment_registry.get(name)
    variants = provider.assignable_content_variants
    return jsonify([variant.to_dict() for variant in variants]), 200


@segments_bp.route("/current", methods=["GET"])
def current_segments():
    """Returns the segments the registered providers assign to this request."""
    segments = segment_registry.segments_for_request(request)
    return jsonify(segments.to_list()), 200
