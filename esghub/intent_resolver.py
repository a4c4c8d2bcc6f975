"""
Intent Resolver for the ESG assistant

Turns a free-text question (plus the page the user is on) into a short data
context for the LLM prompt:

1. Topic match: the lower-cased message is checked against TOPICS in order;
   the first entry with any keyword substring wins. No scoring.
2. The topic handler runs fixed company-scoped queries and returns
   (relevant_data, context). Context lines start with a fixed label
   ("Licenças:", "Emissões:", ...).
3. No topic: fall back to the handler registered for the current page, else
   GENERAL_QUESTION_CONTEXT.
4. Independently, market-like questions get a canned snippet from
   market_intel.

Handler failures never propagate: they are logged and turned into a context
line describing the error.
"""

import json
import logging
import re
from datetime import date, timedelta

from esghub import db, queries, scoring
from esghub.market_intel import search_market_info
from esghub.models import (
    Audit, ComplianceTask, Employee, ESGRisk, Goal, License, NonConformity,
    Opportunity, SafetyIncident, SocialProject, Stakeholder, Training, WasteLog,
)

logger = logging.getLogger(__name__)

GENERAL_QUESTION_CONTEXT = (
    "Pergunta geral sobre gestão ESG - nenhum dado específico da empresa foi consultado."
)

LICENSE_WARNING_DAYS = 90
DASHBOARD_LICENSE_WARNING_DAYS = 60
GOAL_RISK_WINDOW_DAYS = 180


def _dicts(records):
    return [r.to_dict() for r in records]


def _mentions(message, *keywords):
    return any(kw in message for kw in keywords)


def _brl(value):
    """1234.5 -> '1.234,50' (pt-BR grouping)."""
    return f"{value:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")


# ---------------------------------------------------------------------------
# Topic handlers: (company_id, message) -> (relevant_data, context)
# ---------------------------------------------------------------------------

def _licenses(company_id, message):
    licenses = (
        License.query.filter_by(company_id=company_id)
        .order_by(License.expiration_date)
        .all()
    )
    today = date.today()
    horizon = today + timedelta(days=LICENSE_WARNING_DAYS)

    expired = [
        lic for lic in licenses
        if lic.status == "Vencida" or (lic.expiration_date and lic.expiration_date < today)
    ]
    expiring = [
        lic for lic in licenses
        if lic.expiration_date and today <= lic.expiration_date <= horizon
        and lic.status != "Vencida"
    ]

    data = {
        "licenses": _dicts(licenses),
        "expiring": _dicts(expiring),
        "expired": _dicts(expired),
    }
    context = (
        f"Licenças: {len(licenses)} cadastradas, {len(expiring)} vencendo nos próximos "
        f"{LICENSE_WARNING_DAYS} dias, {len(expired)} vencidas."
    )
    if expiring and _mentions(message, "venc", "expi"):
        names = ", ".join(
            f"{lic.license_name} ({lic.expiration_date.isoformat()})" for lic in expiring[:5]
        )
        context += f" Próximos vencimentos: {names}."
    return data, context


def _emissions(company_id, message):
    scope_match = re.search(r"escopo\s*([123])|scope\s*([123])", message)
    scope = int(scope_match.group(1) or scope_match.group(2)) if scope_match else None

    rows = queries.emission_rows(company_id, scope=scope)
    by_scope = {1: 0.0, 2: 0.0, 3: 0.0}
    for row in rows:
        by_scope[row["scope"]] = by_scope.get(row["scope"], 0.0) + row["total_co2e"]
    total = sum(by_scope.values())
    sources = sorted({row["source"] for row in rows})

    data = {
        "emissions": rows,
        "totals_by_scope": {f"scope{k}": round(v, 2) for k, v in by_scope.items()},
        "total_co2e": round(total, 2),
    }
    if scope:
        context = (
            f"Emissões: Escopo {scope} soma {by_scope[scope]:.2f} tCO2e "
            f"em {len(sources)} fonte(s)."
        )
    else:
        context = (
            f"Emissões: total de {total:.2f} tCO2e (Escopo 1: {by_scope[1]:.2f}, "
            f"Escopo 2: {by_scope[2]:.2f}, Escopo 3: {by_scope[3]:.2f}) "
            f"em {len(sources)} fonte(s)."
        )
    return data, context


def _goals(company_id, message):
    goals = Goal.query.filter_by(company_id=company_id).all()
    active = [g for g in goals if g.status == "Em Andamento"]
    today = date.today()
    at_risk = [
        g for g in active
        if (g.progress_percentage or 0) < 50 and g.deadline_date
        and (g.deadline_date - today).days < GOAL_RISK_WINDOW_DAYS
    ]
    avg_progress = (
        sum(g.progress_percentage or 0 for g in active) / len(active) if active else 0
    )
    data = {"goals": _dicts(goals), "at_risk": _dicts(at_risk)}
    context = (
        f"Metas: {len(goals)} cadastradas, {len(active)} em andamento com progresso médio "
        f"de {avg_progress:.1f}%, {len(at_risk)} em risco."
    )
    return data, context


def _tasks(company_id, message):
    tasks = ComplianceTask.query.filter_by(company_id=company_id).all()
    pending = [t for t in tasks if t.status == "Pendente"]
    overdue = [t for t in tasks if t.is_overdue]
    shown = overdue if _mentions(message, "atras") else tasks
    data = {"tasks": _dicts(shown), "overdue": _dicts(overdue)}
    context = (
        f"Tarefas: {len(tasks)} tarefas de conformidade, {len(pending)} pendentes, "
        f"{len(overdue)} em atraso."
    )
    return data, context


def _non_conformities(company_id, message):
    ncs = NonConformity.query.filter_by(company_id=company_id).all()
    open_ncs = [nc for nc in ncs if nc.is_open]
    by_status = scoring.count_by(_dicts(ncs), "status", "Sem status")
    data = {"non_conformities": _dicts(ncs), "by_status": by_status}
    context = (
        f"Não conformidades: {len(ncs)} registradas, {len(open_ncs)} abertas "
        f"({json.dumps(by_status, ensure_ascii=False)})."
    )
    return data, context


def _risks(company_id, message):
    risks = ESGRisk.query.filter_by(company_id=company_id, status="Ativo").all()
    critical = [r for r in risks if r.inherent_risk_level == "Crítico"]
    high = [r for r in risks if r.inherent_risk_level == "Alto"]
    shown = critical if _mentions(message, "crític", "critic") else risks
    data = {"risks": _dicts(shown), "by_category": scoring.group_by_category(_dicts(risks))}
    context = (
        f"Riscos: {len(risks)} riscos ativos, {len(critical)} críticos, {len(high)} altos."
    )
    return data, context


def _opportunities(company_id, message):
    opportunities = Opportunity.query.filter_by(company_id=company_id).all()
    potential = sum(o.potential_value or 0 for o in opportunities)
    in_progress = [o for o in opportunities if o.status == "Em Implementação"]
    data = {"opportunities": _dicts(opportunities)}
    context = (
        f"Oportunidades: {len(opportunities)} identificadas, {len(in_progress)} em "
        f"implementação, valor potencial de R$ {_brl(potential)}."
    )
    return data, context


def _audits(company_id, message):
    audits = Audit.query.filter_by(company_id=company_id).order_by(Audit.start_date).all()
    upcoming = [a for a in audits if a.status in ("Planejada", "Em Andamento")]
    findings = sum(a.findings_count or 0 for a in audits)
    data = {"audits": _dicts(audits)}
    context = (
        f"Auditorias: {len(audits)} registradas, {len(upcoming)} planejadas ou em andamento, "
        f"{findings} constatações no total."
    )
    return data, context


def _waste(company_id, message):
    waste = _dicts(WasteLog.query.filter_by(company_id=company_id).all())
    total = sum(w["quantity"] or 0 for w in waste)
    rate = scoring.calculate_recycling_rate(waste)
    data = {
        "waste": waste,
        "by_class": scoring.count_by(waste, "waste_class", "Não classificado"),
        "recycling_rate": round(rate, 1),
    }
    context = (
        f"Resíduos: {len(waste)} registros somando {total:.2f} kg, "
        f"taxa de reciclagem de {rate:.1f}%."
    )
    return data, context


def _energy(company_id, message):
    electricity, fuels, thermal = queries.energy_rows(company_id)
    summary = scoring.summarize_energy_consumption(electricity, fuels, thermal)
    data = {"energy": summary}
    context = (
        f"Energia: consumo de {summary['total_kwh']:.2f} kWh no ano, "
        f"{summary['renewable_percentage']:.1f}% renovável."
    )
    return data, context


def _trainings(company_id, message):
    trainings = _dicts(Training.query.filter_by(company_id=company_id).all())
    employees = Employee.query.filter_by(company_id=company_id, status="Ativo").count()
    hours = sum(t["duration_hours"] or 0 for t in trainings)
    per_employee = scoring.calculate_intensity(hours, employees)
    data = {"trainings": trainings}
    context = (
        f"Treinamentos: {len(trainings)} registros, {hours:.1f} horas no total, "
        f"{per_employee:.1f} h por colaborador ativo."
    )
    return data, context


def _incidents(company_id, message):
    incidents = _dicts(SafetyIncident.query.filter_by(company_id=company_id).all())
    year = date.today().year
    this_year = [i for i in incidents if i["incident_date"] and i["incident_date"].startswith(str(year))]
    data = {"incidents": incidents, "by_severity": scoring.group_by_severity(incidents)}
    context = (
        f"Incidentes: {len(incidents)} registrados, {len(this_year)} em {year}."
    )
    return data, context


def _social_projects(company_id, message):
    projects = SocialProject.query.filter_by(company_id=company_id).all()
    active = [p for p in projects if p.status == "Em Andamento"]
    beneficiaries = sum(p.beneficiaries or 0 for p in projects)
    data = {"social_projects": _dicts(projects)}
    context = (
        f"Projetos sociais: {len(projects)} cadastrados, {len(active)} em andamento, "
        f"{beneficiaries} beneficiários."
    )
    return data, context


def _stakeholders(company_id, message):
    stakeholders = Stakeholder.query.filter_by(company_id=company_id).all()
    high = [s for s in stakeholders if s.influence_level == "Alta"]
    data = {
        "stakeholders": _dicts(stakeholders),
        "by_category": scoring.count_by(_dicts(stakeholders), "category", "Outros"),
    }
    context = (
        f"Stakeholders: {len(stakeholders)} mapeados, {len(high)} de alta influência."
    )
    return data, context


def _employees(company_id, message):
    employees = _dicts(Employee.query.filter_by(company_id=company_id, status="Ativo").all())
    diversity = scoring.calculate_diversity_metrics(employees)
    data = {
        "employees": employees,
        "by_department": scoring.group_by_department(employees),
        "diversity": diversity,
    }
    context = (
        f"Colaboradores: {len(employees)} ativos, índice de diversidade de gênero "
        f"{diversity['diversity_index']}/10."
    )
    return data, context


def _esg_performance(company_id, message):
    inputs = queries.integrated_report_inputs(company_id)
    scores = {
        "environmental": scoring.calculate_environmental_score(
            inputs["emissions"], inputs["indicators"], inputs["waste"], inputs["licenses"]),
        "social": scoring.calculate_social_score(
            inputs["employees"], inputs["incidents"], inputs["projects"],
            inputs["indicators"], inputs["trainings"]),
        "governance": scoring.calculate_governance_score(
            inputs["risks"], inputs["indicators"], inputs["goals"]),
    }
    data = {"esg_scores": scores}
    context = (
        f"Desempenho ESG: Ambiental {scores['environmental']}/100, "
        f"Social {scores['social']}/100, Governança {scores['governance']}/100."
    )
    return data, context


def _overview(company_id, message):
    today = date.today()
    horizon = today + timedelta(days=DASHBOARD_LICENSE_WARNING_DAYS)
    tasks = ComplianceTask.query.filter_by(company_id=company_id).all()
    overdue = sum(1 for t in tasks if t.is_overdue)
    expiring = License.query.filter(
        License.company_id == company_id,
        License.expiration_date >= today,
        License.expiration_date <= horizon,
    ).count()
    open_ncs = NonConformity.query.filter(
        NonConformity.company_id == company_id,
        NonConformity.status != "Encerrada",
    ).count()
    data = {
        "alerts": {
            "overdue_tasks": overdue,
            "expiring_licenses": expiring,
            "open_non_conformities": open_ncs,
        }
    }
    context = (
        f"Visão geral: {overdue} tarefas em atraso, {expiring} licenças vencendo em "
        f"{DASHBOARD_LICENSE_WARNING_DAYS} dias, {open_ncs} não conformidades abertas."
    )
    return data, context


# ---------------------------------------------------------------------------
# Routing tables
# ---------------------------------------------------------------------------

TOPICS = [
    {
        "topic": "licenses",
        "keywords": ("licen", "venc", "expi", "alvará", "alvara"),
        "handler": _licenses,
        "actions": ["Ver licenças vencendo", "Iniciar renovação de licença"],
    },
    {
        "topic": "emissions",
        "keywords": ("emiss", "carbon", "co2", "ghg", "escopo", "gee"),
        "handler": _emissions,
        "actions": ["Ver inventário de emissões", "Registrar dados de atividade"],
    },
    {
        "topic": "goals",
        "keywords": ("meta", "objetivo", "target"),
        "handler": _goals,
        "actions": ["Ver metas em risco", "Atualizar progresso das metas"],
    },
    {
        "topic": "tasks",
        "keywords": ("tarefa", "prazo", "pendên", "penden", "atras"),
        "handler": _tasks,
        "actions": ["Ver tarefas em atraso", "Redistribuir responsáveis"],
    },
    {
        "topic": "non_conformities",
        "keywords": ("conformidade", "desvio", "ação corretiva", "acao corretiva"),
        "handler": _non_conformities,
        "actions": ["Ver não conformidades abertas", "Registrar ação corretiva"],
    },
    {
        "topic": "risks",
        "keywords": ("risco", "ameaça", "ameaca"),
        "handler": _risks,
        "actions": ["Ver matriz de riscos", "Definir tratamento de risco"],
    },
    {
        "topic": "opportunities",
        "keywords": ("oportunidade",),
        "handler": _opportunities,
        "actions": ["Ver oportunidades ESG"],
    },
    {
        "topic": "audits",
        "keywords": ("auditori", "audit"),
        "handler": _audits,
        "actions": ["Ver auditorias planejadas", "Criar modelo de auditoria"],
    },
    {
        "topic": "waste",
        "keywords": ("resíduo", "residuo", "lixo", "reciclag", "descarte"),
        "handler": _waste,
        "actions": ["Ver relatório de resíduos", "Registrar destinação"],
    },
    {
        "topic": "energy",
        "keywords": ("energia", "kwh", "eletricidade", "combustível", "combustivel"),
        "handler": _energy,
        "actions": ["Ver consumo de energia"],
    },
    {
        "topic": "trainings",
        "keywords": ("treinament", "capacitaç", "capacitac"),
        "handler": _trainings,
        "actions": ["Ver horas de treinamento", "Planejar capacitação"],
    },
    {
        "topic": "incidents",
        "keywords": ("acidente", "incidente", "segurança do trabalho", "seguranca do trabalho"),
        "handler": _incidents,
        "actions": ["Ver incidentes por severidade"],
    },
    {
        "topic": "social_projects",
        "keywords": ("projeto social", "projetos sociais", "comunidade", "voluntariado"),
        "handler": _social_projects,
        "actions": ["Ver projetos sociais"],
    },
    {
        "topic": "stakeholders",
        "keywords": ("stakeholder", "partes interessadas", "parte interessada", "engajamento"),
        "handler": _stakeholders,
        "actions": ["Ver mapa de stakeholders", "Criar campanha de comunicação"],
    },
    {
        "topic": "employees",
        "keywords": ("funcionári", "funcionari", "colaborador", "diversidade", "gênero", "genero"),
        "handler": _employees,
        "actions": ["Ver indicadores de pessoas"],
    },
    {
        "topic": "esg_performance",
        "keywords": ("desempenho", "score", "pontuação", "pontuacao", "indicador", "relatório integrado"),
        "handler": _esg_performance,
        "actions": ["Gerar relatório integrado"],
    },
]

_TOPICS_BY_NAME = {t["topic"]: t for t in TOPICS}

PAGE_DEFAULTS = {
    "dashboard": ("overview", _overview),
    "licenciamento": ("licenses", _licenses),
    "inventario-gee": ("emissions", _emissions),
    "metas": ("goals", _goals),
    "gestao-tarefas": ("tasks", _tasks),
    "nao-conformidades": ("non_conformities", _non_conformities),
    "riscos-oportunidades": ("risks", _risks),
    "auditoria": ("audits", _audits),
    "residuos": ("waste", _waste),
    "energia": ("energy", _energy),
    "treinamentos": ("trainings", _trainings),
    "gestao-pessoas": ("employees", _employees),
    "stakeholders": ("stakeholders", _stakeholders),
    "relatorios-integrados": ("esg_performance", _esg_performance),
}

OVERVIEW_ACTIONS = ["Ver tarefas em atraso", "Ver licenças vencendo", "Ver não conformidades abertas"]


def match_topic(message):
    """First TOPICS entry whose keywords appear in the message, or None."""
    text = (message or "").lower()
    for entry in TOPICS:
        if any(kw in text for kw in entry["keywords"]):
            return entry
    return None


def _page_key(current_page):
    key = (current_page or "").strip().lower().strip("/")
    if not key and current_page:
        return "dashboard"
    return key


def resolve_intent(message, company_id, current_page=None):
    """
    Build the assistant context for one question.

    Returns dict:
        topic: matched topic name, page fallback topic, or None
        relevant_data: dict of records/aggregates keyed by topic
        context: one-line human-readable summary
        market_info: canned market snippet or None
        suggested_actions: list of short action labels
    """
    text = (message or "").lower()
    market_info = search_market_info(text)

    entry = match_topic(text)
    if entry:
        topic, handler, actions = entry["topic"], entry["handler"], entry["actions"]
    else:
        page = PAGE_DEFAULTS.get(_page_key(current_page))
        if not page:
            return {
                "topic": None,
                "relevant_data": {},
                "context": GENERAL_QUESTION_CONTEXT,
                "market_info": market_info,
                "suggested_actions": [],
            }
        topic, handler = page
        actions = _TOPICS_BY_NAME[topic]["actions"] if topic in _TOPICS_BY_NAME else OVERVIEW_ACTIONS

    try:
        relevant_data, context = handler(company_id, text)
    except Exception as e:
        logger.error(f"Intent resolver failed for topic '{topic}' (company {company_id}): {e}")
        db.session.rollback()
        relevant_data = {}
        context = f"Ocorreu um erro ao buscar os dados de {topic}: {e}"

    logger.info(f"Resolved topic '{topic}' for company {company_id}")
    return {
        "topic": topic,
        "relevant_data": relevant_data,
        "context": context,
        "market_info": market_info,
        "suggested_actions": actions,
    }
