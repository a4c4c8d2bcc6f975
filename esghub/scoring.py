"""
Integrated Report Scoring

Heuristic ESG pillar scores and the small aggregates that feed the
integrated report and the assistant context:
- Environmental / Social / Governance scores (0-100, base score adjusted by
  capped penalties and bonuses)
- Recycling rate, diversity index, key highlights, group-by counts
- Energy consumption normalised to kWh with renewable share

All functions take plain record dicts (as produced by ``Model.to_dict()``)
so they can be used on query results or on imported data alike.
"""

import math
from datetime import date


def _round_half_up(value):
    return int(math.floor(value + 0.5))


def _clamp_score(score):
    return max(0, min(100, _round_half_up(score)))


def _parse_date(value):
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _attainment(indicator):
    """Current/target as a percentage capped at 100, or None when not measurable."""
    target = indicator.get("target_value")
    current = indicator.get("current_value")
    if not target or not current:
        return None
    return min(current / target * 100, 100)


# ---------------------------------------------------------------------------
# Pillar scores
# ---------------------------------------------------------------------------

def calculate_environmental_score(emissions, indicators, waste, licenses):
    env_indicators = [i for i in indicators if i.get("esg_category") == "Environmental"]

    score = 70

    if env_indicators:
        # Indicators without target/current count as zero attainment
        total = sum(_attainment(i) or 0 for i in env_indicators)
        score = total / len(env_indicators)

    expired = sum(1 for lic in licenses if lic.get("status") == "Vencida")
    score -= min(expired * 5, 20)

    recycled = sum(1 for w in waste if "Reciclagem" in (w.get("disposal_method") or ""))
    recycling_rate = recycled / len(waste) * 100 if waste else 0
    score += min(recycling_rate / 10, 10)

    return _clamp_score(score)


def calculate_social_score(employees, incidents, projects, indicators, trainings, year=None):
    year = year or date.today().year

    score = 70

    incidents_this_year = [
        i for i in incidents
        if (_parse_date(i.get("incident_date")) or date.min).year == year
    ]
    score -= min(len(incidents_this_year) * 2, 20)

    active_projects = [p for p in projects if p.get("status") == "Em Andamento"]
    score += min(len(active_projects) * 3, 15)

    training_hours = sum(t.get("duration_hours") or 0 for t in trainings)
    hours_per_employee = training_hours / len(employees) if employees else 0
    score += min(hours_per_employee / 2, 10)

    return _clamp_score(score)


def calculate_governance_score(risks, indicators, goals):
    score = 75

    critical = [r for r in risks if r.get("inherent_risk_level") == "Crítico"]
    score -= min(len(critical) * 5, 25)

    active_goals = [g for g in goals if g.get("status") == "Em Andamento"]
    avg_progress = (
        sum(g.get("progress_percentage") or 0 for g in active_goals) / len(active_goals)
        if active_goals else 0
    )
    score += min(avg_progress / 10, 10)

    return _clamp_score(score)


def generate_key_highlights(employees, incidents, projects, emissions, waste):
    total_emissions = sum(e.get("total_co2e") or 0 for e in emissions)
    total_waste = sum(w.get("quantity") or 0 for w in waste)
    return [
        f"{len(employees)} colaboradores ativos na organização",
        f"{len(incidents)} incidentes de segurança registrados no período",
        f"{len(projects)} projetos sociais em andamento",
        f"{total_emissions:.2f} tCO2e de emissões de gases de efeito estufa",
        f"{total_waste:.2f} toneladas de resíduos gerenciados",
    ]


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

def calculate_recycling_rate(waste):
    if not waste:
        return 0
    recycled = 0
    for w in waste:
        method = (w.get("disposal_method") or "").lower()
        if "reciclagem" in method or "compostagem" in method:
            recycled += 1
    return recycled / len(waste) * 100


def calculate_intensity(value, denominator):
    """Ratio used for waste/energy/emission intensities (per employee, per unit produced)."""
    if not denominator:
        return 0
    return value / denominator


def calculate_diversity_metrics(employees, today=None):
    total = len(employees)
    if total == 0:
        return {"gender_distribution": [], "age_distribution": [], "diversity_index": 0}

    today = today or date.today()
    gender_count = count_by(employees, "gender", "Não informado")

    age_groups = {}
    for emp in employees:
        birth = _parse_date(emp.get("birth_date"))
        if not birth:
            continue
        age = today.year - birth.year
        group = "<30" if age < 30 else "30-50" if age < 50 else "50+"
        age_groups[group] = age_groups.get(group, 0) + 1

    # Simpson diversity index on gender, scaled to 0-10
    concentration = sum((count / total) ** 2 for count in gender_count.values())
    diversity_index = (1 - concentration) * 10

    return {
        "gender_distribution": [
            {"gender": g, "count": c, "percentage": c / total * 100}
            for g, c in gender_count.items()
        ],
        "age_distribution": [
            {"group": g, "count": c, "percentage": c / total * 100}
            for g, c in age_groups.items()
        ],
        "diversity_index": round(diversity_index, 1),
    }


def count_by(records, field, default):
    counts = {}
    for record in records:
        key = record.get(field) or default
        counts[key] = counts.get(key, 0) + 1
    return counts


def group_by_department(employees):
    return count_by(employees, "department", "Não informado")


def group_by_role(employees):
    return count_by(employees, "position", "Não informado")


def group_by_severity(incidents):
    return count_by(incidents, "severity", "Não informado")


def group_by_category(risks):
    return count_by(risks, "category", "Outros")


def calculate_trend(indicator):
    """1 when target is met, 0 within 80% of it, -1 below (or not measurable: 0)."""
    if not indicator.get("target_value") or not indicator.get("current_value"):
        return 0
    performance = indicator["current_value"] / indicator["target_value"] * 100
    if performance >= 100:
        return 1
    if performance >= 80:
        return 0
    return -1


# ---------------------------------------------------------------------------
# Energy consumption
# ---------------------------------------------------------------------------

# kWh per litre (liquids), per m³ (gases) or per kg (solids)
ENERGY_CONVERSION_FACTORS = {
    "diesel": 10.8,
    "diesel b": 10.8,
    "diesel s10": 10.8,
    "diesel s500": 10.8,
    "gasolina": 9.1,
    "gasolina comum": 9.1,
    "gasolina premium": 9.1,
    "etanol": 6.5,
    "etanol hidratado": 6.5,
    "etanol anidro": 6.5,
    "biodiesel": 10.0,
    "óleo combustível": 11.2,
    "querosene": 10.2,
    "gás natural": 10.6,
    "gnv": 10.6,
    "biogás": 6.5,
    "glp": 12.8,
    "carvão": 7.5,
    "carvão mineral": 7.5,
    "carvão vegetal": 8.1,
    "lenha": 4.4,
    "biomassa": 4.5,
    "pellet": 5.0,
    "bagaço de cana": 4.2,
}

RENEWABLE_SOURCES = [
    "solar", "eólica", "hidrelétrica", "biomassa", "biogás",
    "etanol", "biodiesel", "bagaço", "lenha", "carvão vegetal",
    "bioenergia", "geotérmica", "maremotriz",
]

RENEWABLE_FUELS = ["etanol", "biodiesel", "biogás", "biomassa", "bagaço", "lenha", "carvão vegetal"]

_TONNE_UNITS = {"t", "tonelada", "toneladas"}
_ENERGY_UNITS = {"kwh": 1, "mwh": 1000, "gwh": 1000000, "tj": 277777.78}


def is_renewable_source(source_name, category=""):
    name = (source_name or "").lower()
    cat = (category or "").lower()
    return any(r in name or r in cat for r in RENEWABLE_SOURCES)


def is_renewable_fuel(fuel_name):
    name = (fuel_name or "").lower()
    return any(r in name for r in RENEWABLE_FUELS)


def to_kwh(quantity, unit):
    """Energy-unit quantity in kWh; unknown units are taken as kWh already."""
    return (quantity or 0) * _ENERGY_UNITS.get((unit or "").lower(), 1)


def convert_fuel_to_kwh(quantity, unit, fuel_type):
    unit_lower = (unit or "").lower()
    if unit_lower in _ENERGY_UNITS:
        return to_kwh(quantity, unit_lower)

    factor = ENERGY_CONVERSION_FACTORS.get((fuel_type or "").lower(), 0)
    base_quantity = quantity or 0
    if unit_lower in _TONNE_UNITS:
        base_quantity *= 1000
    # kg, litres and m³ are already the factor's base unit
    return base_quantity * factor


def summarize_energy_consumption(electricity, fuels, thermal):
    """
    Consolidate energy use into kWh.

    Each argument is a list of {"source", "quantity", "unit"} rows:
    purchased electricity, combusted fuels and thermal energy (steam/heat).

    Returns dict with totals, renewable split and a breakdown that omits
    zero entries. All figures rounded to 2 decimals.
    """
    breakdown = []
    totals = {"electricity": 0, "fuel": 0, "thermal": 0}
    renewable = 0

    for row in electricity:
        kwh = to_kwh(row.get("quantity"), row.get("unit"))
        is_renewable = is_renewable_source(row.get("source"), "eletricidade")
        totals["electricity"] += kwh
        renewable += kwh if is_renewable else 0
        breakdown.append({"source": row.get("source", ""), "category": "Eletricidade",
                          "kwh": kwh, "is_renewable": is_renewable})

    for row in fuels:
        kwh = convert_fuel_to_kwh(row.get("quantity"), row.get("unit"), row.get("source"))
        is_renewable = is_renewable_fuel(row.get("source"))
        totals["fuel"] += kwh
        renewable += kwh if is_renewable else 0
        breakdown.append({"source": row.get("source", ""), "category": "Combustível",
                          "kwh": kwh, "is_renewable": is_renewable})

    for row in thermal:
        kwh = to_kwh(row.get("quantity"), row.get("unit"))
        is_renewable = is_renewable_source(row.get("source"), "térmico")
        totals["thermal"] += kwh
        renewable += kwh if is_renewable else 0
        breakdown.append({"source": row.get("source", ""), "category": "Energia Térmica",
                          "kwh": kwh, "is_renewable": is_renewable})

    total = totals["electricity"] + totals["fuel"] + totals["thermal"]
    renewable_pct = renewable / total * 100 if total > 0 else 0

    return {
        "total_kwh": round(total, 2),
        "electricity_kwh": round(totals["electricity"], 2),
        "fuel_kwh": round(totals["fuel"], 2),
        "thermal_kwh": round(totals["thermal"], 2),
        "renewable_kwh": round(renewable, 2),
        "non_renewable_kwh": round(total - renewable, 2),
        "renewable_percentage": round(renewable_pct, 2),
        "breakdown": [b for b in breakdown if b["kwh"] > 0],
    }
