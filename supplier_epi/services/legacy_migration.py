"""
Supplier EPI - Legacy Submission Migration

Early submissions were written by the mobile client with camelCase keys and
several aliases for the same score (calculatedScore/globalScore,
qualityScore/calidadScore, supplyScore/abastecimientoScore), responses split
into qualityResponses/supplyResponses, epoch-millisecond timestamps and a
boolean isValid audit flag.

normalize_submission() maps one such document to the canonical schema and
migrate_legacy_submissions() rewrites every legacy document once, so the
rest of the engine only ever sees canonical snapshots.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supplier_epi.schemas.epi import (
    SUBMISSION_SCHEMA_VERSION,
    AuditItemStatus,
    Submission,
)

logger = logging.getLogger(__name__)


# canonical field -> aliases, first present alias wins
SCORE_ALIASES = {
    "global_score": ("global_score", "globalScore", "calculated_score", "calculatedScore"),
    "calidad_score": ("calidad_score", "calidadScore", "quality_score", "qualityScore"),
    "abastecimiento_score": (
        "abastecimiento_score", "abastecimientoScore", "supply_score", "supplyScore",
    ),
}

FIELD_ALIASES = {
    "supplier_id": ("supplier_id", "supplierId"),
    "can_edit": ("can_edit", "canEdit"),
    "submitted_at": ("submitted_at", "submittedAt"),
    "created_at": ("created_at", "createdAt"),
    "updated_at": ("updated_at", "updatedAt"),
    "reviewed_at": ("reviewed_at", "reviewedAt"),
    "reviewed_by": ("reviewed_by", "reviewedBy"),
    "review_comments": ("review_comments", "reviewComments"),
    "audited_at": ("audited_at", "auditedAt"),
    "audited_by": ("audited_by", "auditedBy"),
    "expires_at": ("expires_at", "expiresAt"),
}

RESPONSE_ALIASES = {
    "question_id": ("question_id", "questionId"),
    "section_id": ("section_id", "sectionId"),
    "points_earned": ("points_earned", "pointsEarned"),
    "points_possible": ("points_possible", "pointsPossible"),
    "evidence_url": ("evidence_url", "evidenceUrl"),
}

LEGACY_ANSWERS = {
    "si": "cumple",
    "sí": "cumple",
    "cumple": "cumple",
    "no": "no_cumple",
    "no_cumple": "no_cumple",
}

DATETIME_FIELDS = (
    "submitted_at", "created_at", "updated_at", "reviewed_at", "audited_at", "expires_at",
)


def _first(document: Dict[str, Any], aliases) -> Any:
    for alias in aliases:
        if document.get(alias) is not None:
            return document[alias]
    return None


def _to_datetime(value: Any) -> Optional[datetime]:
    """Accept datetimes, ISO strings, epoch millis and Firestore timestamp maps."""
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, dict) and "seconds" in value:
        return datetime.fromtimestamp(value["seconds"], tz=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def is_legacy(document: Dict[str, Any]) -> bool:
    """True when a stored submission predates the canonical schema."""
    return int(document.get("schema_version") or 1) < SUBMISSION_SCHEMA_VERSION


def normalize_response(raw: Dict[str, Any], category: Optional[str] = None) -> Dict[str, Any]:
    response = {field: _first(raw, aliases) for field, aliases in RESPONSE_ALIASES.items()}
    response["category"] = raw.get("category") or category
    answer = str(raw.get("answer", "")).strip().lower()
    response["answer"] = LEGACY_ANSWERS.get(answer, answer)
    response["note"] = raw.get("note") or raw.get("observation")
    response["timestamp"] = _to_datetime(raw.get("timestamp")) or datetime.fromtimestamp(0, tz=timezone.utc)
    if response["points_earned"] is None:
        response["points_earned"] = 0.0
    if response["points_possible"] is None:
        response["points_possible"] = 0.0
    return response


def normalize_audit_validation(raw: Dict[str, Any]) -> Dict[str, Any]:
    status = raw.get("status")
    if status is None:
        if "isValid" in raw or "is_valid" in raw:
            is_valid = raw.get("isValid", raw.get("is_valid"))
            status = AuditItemStatus.VALID.value if is_valid else AuditItemStatus.INVALID.value
        else:
            status = AuditItemStatus.PENDING.value
    return {
        "status": status,
        "finding": raw.get("finding") or "",
        "evidence_url": raw.get("evidence_url") or raw.get("evidenceUrl"),
    }


def normalize_submission(document: Dict[str, Any]) -> Dict[str, Any]:
    """Map a legacy submission document onto the canonical schema."""
    if not is_legacy(document):
        return dict(document)

    normalized: Dict[str, Any] = {"id": document.get("id")}
    for field, aliases in FIELD_ALIASES.items():
        normalized[field] = _first(document, aliases)
    for field, aliases in SCORE_ALIASES.items():
        normalized[field] = float(_first(document, aliases) or 0)

    normalized["status"] = document.get("status") or "submitted"
    normalized["can_edit"] = bool(normalized["can_edit"])
    normalized["review_comments"] = normalized["review_comments"] or ""
    if document.get("classification"):
        normalized["classification"] = document["classification"]
    if document.get("progress"):
        normalized["progress"] = document["progress"]

    responses: List[Dict[str, Any]] = []
    if document.get("responses"):
        responses.extend(normalize_response(r) for r in document["responses"])
    else:
        responses.extend(normalize_response(r, "calidad") for r in document.get("qualityResponses") or [])
        responses.extend(normalize_response(r, "abastecimiento") for r in document.get("supplyResponses") or [])
    normalized["responses"] = responses

    raw_validations = document.get("audit_validations") or document.get("auditValidations") or {}
    normalized["audit_validations"] = {
        question_id: normalize_audit_validation(raw)
        for question_id, raw in raw_validations.items()
    }

    for field in DATETIME_FIELDS:
        normalized[field] = _to_datetime(normalized.get(field))
    if normalized["created_at"] is None:
        normalized["created_at"] = normalized["submitted_at"] or datetime.fromtimestamp(0, tz=timezone.utc)
    if normalized["updated_at"] is None:
        normalized["updated_at"] = normalized["created_at"]

    normalized["schema_version"] = SUBMISSION_SCHEMA_VERSION
    return {key: value for key, value in normalized.items() if value is not None}


def document_to_submission(document: Dict[str, Any]) -> Submission:
    """Build a Submission from a stored document."""
    if is_legacy(document):
        logger.warning(
            f"Submission {document.get('id')} read before legacy migration; normalizing in place"
        )
        document = normalize_submission(document)
    return Submission.model_validate(document)


async def migrate_legacy_submissions(store) -> int:
    """
    Rewrite every legacy submission in canonical form.

    Returns the number of documents migrated. Safe to run repeatedly.
    """
    migrated = 0
    for document in await store.list_raw():
        if not is_legacy(document):
            continue
        canonical = Submission.model_validate(normalize_submission(document))
        await store.replace_raw(document["id"], canonical.model_dump(mode="json"))
        migrated += 1

    logger.info(f"Migrated {migrated} legacy EPI submissions")
    return migrated
