from datetime import date, timedelta

from esghub import create_app, db
from esghub.models import (
    ActivityData, ComplianceTask, Company, EmissionSource, Employee, Goal, License,
    NonConformity, WasteLog,
)

app = create_app()


def _seed_demo_data(company):
    """A handful of records so the dashboard and assistant have something to show."""
    today = date.today()
    db.session.add_all([
        License(company_id=company.id, license_name="Licença de Operação",
                license_type="LO", issuing_body="CETESB",
                issue_date=today - timedelta(days=1400),
                expiration_date=today + timedelta(days=45)),
        Goal(company_id=company.id, goal_name="Reduzir emissões de escopo 2 em 20%",
             category="Ambiental", target_value=20, progress_percentage=35,
             deadline_date=today + timedelta(days=365)),
        ComplianceTask(company_id=company.id, title="Entregar relatório anual de resíduos",
                       responsible="Meio Ambiente", due_date=today - timedelta(days=5)),
        NonConformity(company_id=company.id, nc_number="NC-001",
                      title="Armazenamento inadequado de óleo usado", severity="Alta",
                      detected_date=today - timedelta(days=12)),
        WasteLog(company_id=company.id, waste_type="Papelão", waste_class="Classe II",
                 quantity=1200, unit="kg", disposal_method="Reciclagem", log_date=today),
        Employee(company_id=company.id, full_name="Ana Souza", department="Operações",
                 position="Analista", gender="Feminino", hire_date=today - timedelta(days=700)),
    ])
    source = EmissionSource(company_id=company.id, name="Energia elétrica da rede",
                            scope=2, category="Eletricidade Adquirida")
    db.session.add(source)
    db.session.flush()
    db.session.add(ActivityData(
        company_id=company.id, emission_source_id=source.id, quantity=50000, unit="kWh",
        period_start_date=date(today.year, 1, 1), period_end_date=date(today.year, 1, 31),
        total_co2e=1.93,
    ))
    db.session.commit()


@app.cli.command("init-db")
def init_db():
    """Initialize the database, the admin user and demo records."""
    db.create_all()
    company = Company.query.order_by(Company.id).first()
    if company and not License.query.filter_by(company_id=company.id).first():
        _seed_demo_data(company)
        print(f"Database initialized. Demo data added for '{company.name}' (admin / admin123)")
    else:
        print("Database already initialized.")


if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5000)
