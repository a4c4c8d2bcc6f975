"""Tests for the assistant's intent resolver."""

from datetime import date, timedelta

import pytest

from esghub import db
from esghub import intent_resolver
from esghub.intent_resolver import GENERAL_QUESTION_CONTEXT, TOPICS, match_topic, resolve_intent
from esghub.models import (
    ActivityData, ComplianceTask, EmissionSource, ESGRisk, Goal, License, NonConformity,
    Opportunity, WasteLog,
)


@pytest.fixture
def seeded(ctx, company_id):
    today = date.today()
    db.session.add_all([
        License(company_id=company_id, license_name="LO Fábrica",
                expiration_date=today + timedelta(days=30)),
        License(company_id=company_id, license_name="LP Galpão",
                expiration_date=today + timedelta(days=400)),
        License(company_id=company_id, license_name="Outorga", status="Vencida",
                expiration_date=today - timedelta(days=3)),
        ComplianceTask(company_id=company_id, title="Relatório IBAMA",
                       due_date=today - timedelta(days=2)),
        NonConformity(company_id=company_id, title="Vazamento", status="Em Análise"),
        WasteLog(company_id=company_id, waste_type="Papel", quantity=10,
                 disposal_method="Reciclagem"),
    ])
    source = EmissionSource(company_id=company_id, name="Caldeira", scope=1,
                            category="Combustão Estacionária")
    db.session.add(source)
    db.session.flush()
    db.session.add(ActivityData(company_id=company_id, emission_source_id=source.id,
                                quantity=100, unit="L", total_co2e=2.5))
    db.session.commit()
    return company_id


def test_match_topic_first_entry_wins():
    # "emiss" precedes "meta" in the topic list
    assert match_topic("Qual a meta de emissões?")["topic"] == "emissions"
    assert match_topic("Como estão as metas?")["topic"] == "goals"
    assert match_topic("Olá, tudo bem?") is None


def test_every_topic_has_keywords_and_actions():
    names = [t["topic"] for t in TOPICS]
    assert len(names) == len(set(names))
    for entry in TOPICS:
        assert entry["keywords"]
        assert entry["actions"]


def test_expiring_licenses(seeded):
    result = resolve_intent("Quais licenças estão vencendo?", seeded, "dashboard")
    assert result["topic"] == "licenses"
    assert result["context"].startswith("Licenças:")
    assert len(result["relevant_data"]["licenses"]) == 3
    assert [lic["license_name"] for lic in result["relevant_data"]["expiring"]] == ["LO Fábrica"]
    assert [lic["license_name"] for lic in result["relevant_data"]["expired"]] == ["Outorga"]
    assert "LO Fábrica" in result["context"]


def test_emissions_by_scope(seeded):
    result = resolve_intent("Quanto emitimos no escopo 1?", seeded)
    assert result["context"].startswith("Emissões:")
    assert "Escopo 1 soma 2.50 tCO2e" in result["context"]
    assert result["relevant_data"]["total_co2e"] == 2.5


def test_overdue_tasks(seeded):
    result = resolve_intent("Tem tarefa atrasada?", seeded)
    assert result["context"].startswith("Tarefas:")
    assert len(result["relevant_data"]["overdue"]) == 1


def test_non_conformities_count_open(seeded):
    result = resolve_intent("Status das não conformidades", seeded)
    assert result["context"].startswith("Não conformidades: 1 registradas, 1 abertas")


def test_waste_recycling_rate(seeded):
    result = resolve_intent("Como está a reciclagem de resíduos?", seeded)
    assert result["relevant_data"]["recycling_rate"] == 100


def test_page_fallback_when_no_keyword(seeded):
    result = resolve_intent("O que devo priorizar?", seeded, "/licenciamento")
    assert result["topic"] == "licenses"
    assert result["context"].startswith("Licenças:")


def test_dashboard_page_gives_overview(seeded):
    result = resolve_intent("O que devo priorizar?", seeded, "/")
    assert result["topic"] == "overview"
    alerts = result["relevant_data"]["alerts"]
    assert alerts == {"overdue_tasks": 1, "expiring_licenses": 1, "open_non_conformities": 1}
    assert result["context"].startswith("Visão geral:")


def test_general_question_without_page(ctx, company_id):
    result = resolve_intent("Olá, tudo bem?", company_id, "pagina-inexistente")
    assert result["context"] == GENERAL_QUESTION_CONTEXT
    assert result["relevant_data"] == {}
    assert result["topic"] is None
    assert result["market_info"] is None


def test_market_info_attached_independently(ctx, company_id):
    result = resolve_intent("Como nossas emissões se comparam ao mercado de carbono?", company_id)
    assert result["topic"] == "emissions"
    assert result["market_info"].startswith("Mercado de carbono")


def test_empty_company_data(ctx, company_id):
    result = resolve_intent("Quais as metas?", company_id)
    assert result["context"].startswith("Metas: 0 cadastradas")


def test_handler_failure_becomes_context(ctx, company_id, monkeypatch):
    def boom(company_id, message):
        raise RuntimeError("db offline")

    entry = next(t for t in TOPICS if t["topic"] == "goals")
    monkeypatch.setitem(entry, "handler", boom)

    result = resolve_intent("Como estão as metas?", company_id)
    assert result["context"] == "Ocorreu um erro ao buscar os dados de goals: db offline"
    assert result["relevant_data"] == {}
    assert result["suggested_actions"] == entry["actions"]


def test_goals_at_risk(ctx, company_id):
    db.session.add(Goal(company_id=company_id, goal_name="Reduzir água", progress_percentage=10,
                        deadline_date=date.today() + timedelta(days=30)))
    db.session.commit()
    result = intent_resolver.resolve_intent("metas em risco", company_id)
    assert len(result["relevant_data"]["at_risk"]) == 1


TOPIC_LABELS = {
    "licenses": "Licenças:",
    "emissions": "Emissões:",
    "goals": "Metas:",
    "tasks": "Tarefas:",
    "non_conformities": "Não conformidades:",
    "risks": "Riscos:",
    "opportunities": "Oportunidades:",
    "audits": "Auditorias:",
    "waste": "Resíduos:",
    "energy": "Energia:",
    "trainings": "Treinamentos:",
    "incidents": "Incidentes:",
    "social_projects": "Projetos sociais:",
    "stakeholders": "Stakeholders:",
    "employees": "Colaboradores:",
    "esg_performance": "Desempenho ESG:",
}


def test_every_topic_has_a_label():
    assert set(TOPIC_LABELS) == {t["topic"] for t in TOPICS}


@pytest.mark.parametrize(
    "topic, keyword",
    [(t["topic"], kw) for t in TOPICS for kw in t["keywords"]],
)
def test_each_keyword_dispatches_to_its_topic(topic, keyword):
    assert match_topic(f"Pergunta sobre {keyword}")["topic"] == topic


@pytest.mark.parametrize("entry", TOPICS, ids=lambda t: t["topic"])
def test_each_topic_context_starts_with_label(ctx, company_id, entry):
    result = resolve_intent(f"Pergunta sobre {entry['keywords'][0]}", company_id)
    assert result["topic"] == entry["topic"]
    assert result["context"].startswith(TOPIC_LABELS[entry["topic"]])
    assert result["suggested_actions"] == entry["actions"]


def test_critical_risk_filter(ctx, company_id):
    db.session.add_all([
        ESGRisk(company_id=company_id, title="Escassez hídrica", inherent_risk_level="Crítico"),
        ESGRisk(company_id=company_id, title="Ruído", inherent_risk_level="Baixo"),
    ])
    db.session.commit()

    critical = resolve_intent("Quais os riscos críticos?", company_id)
    assert [r["title"] for r in critical["relevant_data"]["risks"]] == ["Escassez hídrica"]
    assert critical["context"] == "Riscos: 2 riscos ativos, 1 críticos, 0 altos."

    everything = resolve_intent("Quais os riscos?", company_id)
    assert len(everything["relevant_data"]["risks"]) == 2


def test_opportunity_value_uses_brazilian_format(ctx, company_id):
    db.session.add(Opportunity(company_id=company_id, title="Energia solar", potential_value=1234567.5))
    db.session.commit()
    result = resolve_intent("Quais oportunidades temos?", company_id)
    assert result["context"].endswith("valor potencial de R$ 1.234.567,50.")
