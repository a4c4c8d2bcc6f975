"""Tests for the dashboard JSON endpoints."""

from datetime import date, timedelta

from esghub.models import ActivityData, EmissionSource, Employee, WasteLog


def test_index_empty_company(client):
    body = client.get("/dashboard/").get_json()
    assert body["company"]["name"] == "Empresa Demo"
    assert body["alerts"] == {
        "overdue_tasks": 0, "expiring_licenses": 0, "open_non_conformities": 0,
    }
    assert body["scores"] == {"environmental": 70, "social": 70, "governance": 75, "overall": 72}


def test_index_counts_alerts(client):
    client.post("/registers/tasks", json={
        "title": "Renovar outorga",
        "due_date": (date.today() - timedelta(days=1)).isoformat(),
    })
    client.post("/registers/non-conformities", json={"title": "Ruído acima do limite"})
    alerts = client.get("/dashboard/").get_json()["alerts"]
    assert alerts["overdue_tasks"] == 1
    assert alerts["open_non_conformities"] == 1


def test_integrated_report(client, add, company_id):
    source_id = add(EmissionSource(company_id=company_id, name="Gerador", scope=1,
                                   category="Combustão Estacionária"))[0]
    add(
        ActivityData(company_id=company_id, emission_source_id=source_id,
                     quantity=100, unit="L", total_co2e=4),
        Employee(company_id=company_id, full_name="Ana", gender="Feminino", department="RH"),
        Employee(company_id=company_id, full_name="Beto", gender="Masculino", department="TI"),
        WasteLog(company_id=company_id, waste_type="Plástico", quantity=5,
                 disposal_method="Reciclagem"),
    )

    body = client.get("/dashboard/integrated-report").get_json()
    env = body["environmental"]
    assert env["total_emissions"] == 4
    assert env["emissions_by_scope"] == {"scope_1": 4}
    assert env["recycling_rate"] == 100
    assert env["emissions_per_employee"] == 2
    assert body["social"]["diversity"]["diversity_index"] == 5.0
    assert body["social"]["by_department"] == {"RH": 1, "TI": 1}
    assert len(body["highlights"]) == 5


def test_energy_summary_for_year(client, add, company_id):
    year = date.today().year
    source_id = add(EmissionSource(company_id=company_id, name="Rede elétrica", scope=2,
                                   category="Eletricidade Adquirida"))[0]
    add(ActivityData(company_id=company_id, emission_source_id=source_id, quantity=3,
                     unit="MWh", period_start_date=date(year, 2, 1),
                     period_end_date=date(year, 2, 28)))

    body = client.get(f"/dashboard/energy?year={year}").get_json()
    assert body["electricity_kwh"] == 3000
    assert body["renewable_percentage"] == 0

    previous = client.get(f"/dashboard/energy?year={year - 1}").get_json()
    assert previous["total_kwh"] == 0
