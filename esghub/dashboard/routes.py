import logging

from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from esghub import db
from esghub.intent_resolver import PAGE_DEFAULTS
from esghub.models import Company
from esghub.queries import energy_rows, integrated_report_inputs
from esghub.scoring import (
    calculate_diversity_metrics, calculate_environmental_score, calculate_governance_score,
    calculate_intensity, calculate_recycling_rate, calculate_social_score, calculate_trend,
    generate_key_highlights, group_by_category, group_by_department, group_by_role,
    group_by_severity, summarize_energy_consumption,
)

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")


def _pillar_scores(inputs):
    environmental = calculate_environmental_score(
        inputs["emissions"], inputs["indicators"], inputs["waste"], inputs["licenses"]
    )
    social = calculate_social_score(
        inputs["employees"], inputs["incidents"], inputs["projects"],
        inputs["indicators"], inputs["trainings"],
    )
    governance = calculate_governance_score(
        inputs["risks"], inputs["indicators"], inputs["goals"]
    )
    return {
        "environmental": environmental,
        "social": social,
        "governance": governance,
        "overall": round((environmental + social + governance) / 3),
    }


@dashboard_bp.before_request
@login_required
def _require_company():
    if not current_user.company_id:
        return jsonify({"error": "Usuário sem empresa associada."}), 400
    return None


@dashboard_bp.route("/")
def index():
    """Alert counts and pillar scores for the landing dashboard."""
    company_id = current_user.company_id
    company = db.session.get(Company, company_id)

    _, overview = PAGE_DEFAULTS["dashboard"]
    alerts, summary = overview(company_id, "")
    inputs = integrated_report_inputs(company_id)

    return jsonify({
        "company": company.to_dict(),
        "alerts": alerts["alerts"],
        "summary": summary,
        "scores": _pillar_scores(inputs),
    })


@dashboard_bp.route("/integrated-report")
def integrated_report():
    """Pillar scores, highlights and the breakdowns shown in the integrated report."""
    company_id = current_user.company_id
    inputs = integrated_report_inputs(company_id)

    total_emissions = sum(e["total_co2e"] for e in inputs["emissions"])
    by_scope = {}
    for row in inputs["emissions"]:
        key = f"scope_{row['scope']}"
        by_scope[key] = round(by_scope.get(key, 0) + row["total_co2e"], 2)

    logger.info(f"Integrated report generated for company {company_id}")

    return jsonify({
        "scores": _pillar_scores(inputs),
        "highlights": generate_key_highlights(
            inputs["employees"], inputs["incidents"], inputs["projects"],
            inputs["emissions"], inputs["waste"],
        ),
        "environmental": {
            "total_emissions": round(total_emissions, 2),
            "emissions_by_scope": by_scope,
            "recycling_rate": calculate_recycling_rate(inputs["waste"]),
            "emissions_per_employee": round(
                calculate_intensity(total_emissions, len(inputs["employees"])), 2
            ),
        },
        "social": {
            "employees": len(inputs["employees"]),
            "diversity": calculate_diversity_metrics(inputs["employees"]),
            "by_department": group_by_department(inputs["employees"]),
            "by_role": group_by_role(inputs["employees"]),
            "incidents_by_severity": group_by_severity(inputs["incidents"]),
        },
        "governance": {
            "risks_by_category": group_by_category(inputs["risks"]),
            "active_goals": sum(1 for g in inputs["goals"] if g.get("status") == "Em Andamento"),
        },
        "indicators": [
            {"name": i["name"], "esg_category": i["esg_category"], "trend": calculate_trend(i)}
            for i in inputs["indicators"]
        ],
    })


@dashboard_bp.route("/energy")
def energy():
    """Energy consumption in kWh for ?year= (defaults to the current year)."""
    year = request.args.get("year", type=int)
    electricity, fuels, thermal = energy_rows(current_user.company_id, year)
    return jsonify(summarize_energy_consumption(electricity, fuels, thermal))
