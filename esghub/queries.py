"""Company-scoped reads shared by the dashboard and the assistant."""

from datetime import date

from esghub import db
from esghub.models import (
    ActivityData, EmissionSource, Employee, ESGRisk, Goal, Indicator, License,
    SafetyIncident, SocialProject, Training, WasteLog,
)

ELECTRICITY_CATEGORY = "Eletricidade Adquirida"
FUEL_CATEGORIES = ("Combustão Móvel", "Combustão Estacionária")


def rows(model, company_id, **filters):
    return [r.to_dict() for r in model.query.filter_by(company_id=company_id, **filters).all()]


def emission_rows(company_id, scope=None):
    """Activity rows joined with their source: name, scope, category, total_co2e."""
    query = (
        db.session.query(ActivityData, EmissionSource)
        .join(EmissionSource, ActivityData.emission_source_id == EmissionSource.id)
        .filter(EmissionSource.company_id == company_id)
    )
    if scope is not None:
        query = query.filter(EmissionSource.scope == scope)
    return [
        {
            "source": src.name,
            "scope": src.scope,
            "category": src.category,
            "quantity": act.quantity,
            "unit": act.unit,
            "period_start_date": act.period_start_date.isoformat() if act.period_start_date else None,
            "total_co2e": act.total_co2e or 0,
        }
        for act, src in query.all()
    ]


def energy_rows(company_id, year=None):
    """Split the year's activity data into (electricity, fuels, thermal) row lists."""
    year = year or date.today().year
    start, end = date(year, 1, 1), date(year, 12, 31)

    query = (
        db.session.query(ActivityData, EmissionSource)
        .join(EmissionSource, ActivityData.emission_source_id == EmissionSource.id)
        .filter(EmissionSource.company_id == company_id)
        .filter(ActivityData.period_start_date >= start)
        .filter(ActivityData.period_end_date <= end)
    )

    electricity, fuels, thermal = [], [], []
    for act, src in query.all():
        row = {"source": src.name, "quantity": act.quantity, "unit": act.unit}
        if src.category == ELECTRICITY_CATEGORY:
            electricity.append(row)
        elif src.category in FUEL_CATEGORIES:
            fuels.append(row)
        elif "vapor" in (src.name or "").lower():
            thermal.append(row)
    return electricity, fuels, thermal


def integrated_report_inputs(company_id):
    """Everything the pillar scores need, as plain dicts."""
    return {
        "emissions": emission_rows(company_id),
        "indicators": rows(Indicator, company_id),
        "waste": rows(WasteLog, company_id),
        "licenses": rows(License, company_id),
        "employees": rows(Employee, company_id, status="Ativo"),
        "incidents": rows(SafetyIncident, company_id),
        "projects": rows(SocialProject, company_id, status="Em Andamento"),
        "trainings": rows(Training, company_id),
        "risks": rows(ESGRisk, company_id, status="Ativo"),
        "goals": rows(Goal, company_id),
    }
