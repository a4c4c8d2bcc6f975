import logging
from datetime import date, datetime

from flask import Blueprint, abort, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import inspect as sa_inspect

from esghub import db
from esghub.models import (
    ActivityData, Audit, ComplianceTask, CustomForm, EmissionSource, Employee, ESGRisk, Goal,
    Indicator, License, NonConformity, Opportunity, SafetyIncident, SocialProject, Stakeholder,
    Training, WasteLog,
)

logger = logging.getLogger(__name__)

registers_bp = Blueprint("registers", __name__, url_prefix="/registers")

# URL segment -> (model, required fields)
REGISTERS = {
    "licenses": (License, ("license_name",)),
    "emission-sources": (EmissionSource, ("name", "scope")),
    "activity-data": (ActivityData, ("emission_source_id", "quantity")),
    "goals": (Goal, ("goal_name",)),
    "tasks": (ComplianceTask, ("title",)),
    "risks": (ESGRisk, ("title",)),
    "opportunities": (Opportunity, ("title",)),
    "non-conformities": (NonConformity, ("title",)),
    "audits": (Audit, ("title",)),
    "waste": (WasteLog, ("waste_type", "quantity")),
    "employees": (Employee, ("full_name",)),
    "trainings": (Training, ("title",)),
    "incidents": (SafetyIncident, ("description", "incident_date")),
    "social-projects": (SocialProject, ("name",)),
    "stakeholders": (Stakeholder, ("name",)),
    "indicators": (Indicator, ("name", "esg_category")),
    "forms": (CustomForm, ("title",)),
}

# Never writable through the API
PROTECTED_FIELDS = {"id", "company_id", "created_at", "closed_at"}


def _register(kind):
    if kind not in REGISTERS:
        abort(404)
    return REGISTERS[kind]


def _coerce(column, value):
    """Turn ISO strings into date/datetime for date columns."""
    if value in (None, ""):
        return None
    python_type = column.type.python_type
    if python_type is datetime and isinstance(value, str):
        return datetime.fromisoformat(value)
    if python_type is date and isinstance(value, str):
        return date.fromisoformat(value[:10])
    return value


def _apply(record, model, data):
    """Copy known, writable columns from the payload onto the record."""
    columns = {attr.key: attr.columns[0] for attr in sa_inspect(model).column_attrs}
    for key, value in data.items():
        if key in PROTECTED_FIELDS or key not in columns:
            continue
        setattr(record, key, _coerce(columns[key], value))


def _check_ownership(model, data, company_id):
    """Referenced emission sources and employees must belong to the same company."""
    if model is ActivityData and data.get("emission_source_id") is not None:
        source = EmissionSource.query.filter_by(
            id=data["emission_source_id"], company_id=company_id
        ).first()
        if not source:
            raise ValueError("Fonte de emissão não encontrada.")
    if model is Training and data.get("employee_id") is not None:
        employee = Employee.query.filter_by(id=data["employee_id"], company_id=company_id).first()
        if not employee:
            raise ValueError("Colaborador não encontrado.")


def _get_record(model, record_id):
    record = model.query.filter_by(id=record_id, company_id=current_user.company_id).first()
    if not record:
        abort(404)
    return record


@registers_bp.before_request
@login_required
def _require_company():
    if not current_user.company_id:
        return jsonify({"error": "Usuário sem empresa associada."}), 400
    return None


@registers_bp.route("/<kind>", methods=["GET"])
def list_records(kind):
    model, _ = _register(kind)
    records = (
        model.query.filter_by(company_id=current_user.company_id)
        .order_by(model.id.desc())
        .all()
    )
    return jsonify([r.to_dict() for r in records])


@registers_bp.route("/<kind>", methods=["POST"])
def create_record(kind):
    model, required = _register(kind)
    data = request.get_json(silent=True) or {}

    missing = [f for f in required if data.get(f) in (None, "")]
    if missing:
        return jsonify({"error": f"Campos obrigatórios: {', '.join(missing)}"}), 400

    try:
        _check_ownership(model, data, current_user.company_id)
        record = model(company_id=current_user.company_id)
        _apply(record, model, data)
        db.session.add(record)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400

    logger.info(f"Created {kind} #{record.id} for company {current_user.company_id}")
    return jsonify(record.to_dict()), 201


@registers_bp.route("/<kind>/<int:record_id>", methods=["GET"])
def get_record(kind, record_id):
    model, _ = _register(kind)
    return jsonify(_get_record(model, record_id).to_dict())


@registers_bp.route("/<kind>/<int:record_id>", methods=["PUT", "PATCH"])
def update_record(kind, record_id):
    model, required = _register(kind)
    record = _get_record(model, record_id)
    data = request.get_json(silent=True) or {}

    cleared = [f for f in required if f in data and data[f] in (None, "")]
    if cleared:
        return jsonify({"error": f"Campos obrigatórios: {', '.join(cleared)}"}), 400

    try:
        _check_ownership(model, data, current_user.company_id)
        _apply(record, model, data)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400

    return jsonify(record.to_dict())


@registers_bp.route("/<kind>/<int:record_id>", methods=["DELETE"])
def delete_record(kind, record_id):
    model, _ = _register(kind)
    record = _get_record(model, record_id)
    db.session.delete(record)
    db.session.commit()
    logger.info(f"Deleted {kind} #{record_id} for company {current_user.company_id}")
    return jsonify({"success": True})


@registers_bp.route("/non-conformities/<int:record_id>/advance", methods=["POST"])
def advance_non_conformity(record_id):
    """Move a non-conformity to its next lifecycle stage."""
    nc = _get_record(NonConformity, record_id)
    try:
        new_status = nc.advance_status()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    db.session.commit()
    logger.info(f"Non-conformity #{nc.id} advanced to {new_status}")
    return jsonify(nc.to_dict())
