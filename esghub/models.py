from datetime import date, datetime, timezone

from flask_login import UserMixin
from sqlalchemy import inspect as sa_inspect
from werkzeug.security import generate_password_hash, check_password_hash

from esghub import db, login_manager


def _utcnow():
    return datetime.now(timezone.utc)


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


class SerializerMixin:
    """Column-by-column dict rendering keyed by column name; dates become ISO strings."""

    def to_dict(self):
        out = {}
        for attr in sa_inspect(type(self)).column_attrs:
            value = getattr(self, attr.key)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            out[attr.columns[0].name] = value
        return out


class Company(SerializerMixin, db.Model):
    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(256), nullable=False)
    sector = db.Column(db.String(128), default="")
    cnpj = db.Column(db.String(32), default="")
    created_at = db.Column(db.DateTime, default=_utcnow)

    users = db.relationship("User", backref="company", lazy="dynamic")


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    full_name = db.Column(db.String(128), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="member")
    # Roles: admin, member
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "company_id": self.company_id,
        }


# ---------------------------------------------------------------------------
# ESG registers
# ---------------------------------------------------------------------------

class License(SerializerMixin, db.Model):
    __tablename__ = "licenses"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    license_name = db.Column(db.String(256), nullable=False)
    license_type = db.Column(db.String(64), default="")
    issuing_body = db.Column(db.String(128), default="")
    status = db.Column(db.String(32), default="Ativa")
    # Status: Ativa, Em Renovação, Vencida, Suspensa
    issue_date = db.Column(db.Date, nullable=True)
    expiration_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow)


class EmissionSource(SerializerMixin, db.Model):
    __tablename__ = "emission_sources"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(256), nullable=False)
    scope = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(128), default="")
    # Category: Combustão Estacionária, Combustão Móvel, Eletricidade Adquirida, ...
    created_at = db.Column(db.DateTime, default=_utcnow)

    activities = db.relationship(
        "ActivityData", backref="source", lazy="dynamic", cascade="all, delete-orphan"
    )


class ActivityData(SerializerMixin, db.Model):
    __tablename__ = "activity_data"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    emission_source_id = db.Column(db.Integer, db.ForeignKey("emission_sources.id"), nullable=False)
    quantity = db.Column(db.Float, nullable=False, default=0)
    unit = db.Column(db.String(32), default="")
    period_start_date = db.Column(db.Date, nullable=True)
    period_end_date = db.Column(db.Date, nullable=True)
    total_co2e = db.Column(db.Float, default=0)
    created_at = db.Column(db.DateTime, default=_utcnow)


class Goal(SerializerMixin, db.Model):
    __tablename__ = "goals"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    goal_name = db.Column(db.String(256), nullable=False)
    category = db.Column(db.String(64), default="")
    target_value = db.Column(db.Float, nullable=True)
    progress_percentage = db.Column(db.Float, default=0)
    deadline_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(32), default="Em Andamento")
    # Status: Em Andamento, Concluída, Cancelada
    created_at = db.Column(db.DateTime, default=_utcnow)


class ComplianceTask(SerializerMixin, db.Model):
    __tablename__ = "compliance_tasks"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    title = db.Column(db.String(256), nullable=False)
    description = db.Column(db.Text, default="")
    responsible = db.Column(db.String(128), default="")
    status = db.Column(db.String(32), default="Pendente")
    # Status: Pendente, Em Andamento, Concluída, Em Atraso
    due_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow)

    @property
    def is_overdue(self):
        if self.status == "Em Atraso":
            return True
        return bool(
            self.due_date and self.due_date < date.today() and self.status != "Concluída"
        )


class ESGRisk(SerializerMixin, db.Model):
    __tablename__ = "esg_risks"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    title = db.Column(db.String(256), nullable=False)
    category = db.Column(db.String(64), default="")
    inherent_risk_level = db.Column(db.String(32), default="Médio")
    # Level: Baixo, Médio, Alto, Crítico
    treatment = db.Column(db.Text, default="")
    status = db.Column(db.String(32), default="Ativo")
    created_at = db.Column(db.DateTime, default=_utcnow)


class Opportunity(SerializerMixin, db.Model):
    __tablename__ = "opportunities"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    title = db.Column(db.String(256), nullable=False)
    category = db.Column(db.String(64), default="")
    potential_value = db.Column(db.Float, default=0)
    status = db.Column(db.String(32), default="Identificada")
    # Status: Identificada, Em Avaliação, Em Implementação, Concluída
    created_at = db.Column(db.DateTime, default=_utcnow)


NC_STATUS_FLOW = ["Aberta", "Em Análise", "Em Correção", "Encerrada"]


class NonConformity(SerializerMixin, db.Model):
    __tablename__ = "non_conformities"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    nc_number = db.Column(db.String(32), default="")
    title = db.Column(db.String(256), nullable=False)
    severity = db.Column(db.String(32), default="Média")
    status = db.Column(db.String(32), default="Aberta")
    detected_date = db.Column(db.Date, nullable=True)
    closed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow)

    @property
    def is_open(self):
        return self.status != NC_STATUS_FLOW[-1]

    def advance_status(self):
        """Move to the next lifecycle stage. Raises ValueError once closed."""
        if self.status not in NC_STATUS_FLOW:
            raise ValueError(f"Status desconhecido: {self.status}")
        idx = NC_STATUS_FLOW.index(self.status)
        if idx == len(NC_STATUS_FLOW) - 1:
            raise ValueError("Não conformidade já encerrada.")
        self.status = NC_STATUS_FLOW[idx + 1]
        if self.status == NC_STATUS_FLOW[-1]:
            self.closed_at = _utcnow()
        return self.status


class Audit(SerializerMixin, db.Model):
    __tablename__ = "audits"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    title = db.Column(db.String(256), nullable=False)
    audit_type = db.Column(db.String(64), default="Interna")
    status = db.Column(db.String(32), default="Planejada")
    # Status: Planejada, Em Andamento, Concluída
    start_date = db.Column(db.Date, nullable=True)
    findings_count = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=_utcnow)


class WasteLog(SerializerMixin, db.Model):
    __tablename__ = "waste_logs"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    waste_type = db.Column(db.String(128), nullable=False)
    waste_class = db.Column(db.String(64), default="")
    quantity = db.Column(db.Float, nullable=False, default=0)
    unit = db.Column(db.String(16), default="kg")
    disposal_method = db.Column(db.String(128), default="")
    log_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow)


class Employee(SerializerMixin, db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    full_name = db.Column(db.String(256), nullable=False)
    email = db.Column(db.String(120), default="")
    department = db.Column(db.String(128), default="")
    position = db.Column(db.String(128), default="")
    gender = db.Column(db.String(32), default="")
    birth_date = db.Column(db.Date, nullable=True)
    hire_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(32), default="Ativo")
    created_at = db.Column(db.DateTime, default=_utcnow)


class Training(SerializerMixin, db.Model):
    __tablename__ = "trainings"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    title = db.Column(db.String(256), nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    duration_hours = db.Column(db.Float, default=0)
    completed_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow)


class SafetyIncident(SerializerMixin, db.Model):
    __tablename__ = "safety_incidents"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    severity = db.Column(db.String(32), default="Leve")
    incident_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)


class SocialProject(SerializerMixin, db.Model):
    __tablename__ = "social_projects"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(256), nullable=False)
    status = db.Column(db.String(32), default="Em Andamento")
    budget = db.Column(db.Float, default=0)
    beneficiaries = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=_utcnow)


class Stakeholder(SerializerMixin, db.Model):
    __tablename__ = "stakeholders"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(256), nullable=False)
    category = db.Column(db.String(64), default="")
    influence_level = db.Column(db.String(32), default="Média")
    # Influence: Baixa, Média, Alta
    contact_email = db.Column(db.String(120), default="")
    last_contact_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow)


class Indicator(SerializerMixin, db.Model):
    __tablename__ = "esg_indicators"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(256), nullable=False)
    esg_category = db.Column(db.String(32), nullable=False)
    # Category: Environmental, Social, Governance
    unit = db.Column(db.String(32), default="")
    target_value = db.Column(db.Float, nullable=True)
    current_value = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow)


# ---------------------------------------------------------------------------
# Forms, mailing lists and campaigns
# ---------------------------------------------------------------------------

class CustomForm(SerializerMixin, db.Model):
    __tablename__ = "custom_forms"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    title = db.Column(db.String(256), nullable=False)
    is_published = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=_utcnow)


class MailingList(SerializerMixin, db.Model):
    __tablename__ = "email_mailing_lists"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    name = db.Column(db.String(256), nullable=False)
    description = db.Column(db.Text, default="")
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    contacts = db.relationship(
        "MailingListContact", backref="mailing_list", lazy="dynamic", cascade="all, delete-orphan"
    )
    form_links = db.relationship(
        "MailingListForm", backref="mailing_list", lazy="dynamic", cascade="all, delete-orphan"
    )


class MailingListContact(SerializerMixin, db.Model):
    __tablename__ = "mailing_list_contacts"
    __table_args__ = (db.UniqueConstraint("mailing_list_id", "email"),)

    id = db.Column(db.Integer, primary_key=True)
    mailing_list_id = db.Column(db.Integer, db.ForeignKey("email_mailing_lists.id"), nullable=False)
    email = db.Column(db.String(254), nullable=False)
    name = db.Column(db.String(256), nullable=True)
    company_name = db.Column(db.String(256), nullable=True)
    extra_fields = db.Column("metadata", db.JSON, default=dict)
    status = db.Column(db.String(20), default="active")
    # Status: active, unsubscribed
    created_at = db.Column(db.DateTime, default=_utcnow)


class MailingListForm(db.Model):
    __tablename__ = "mailing_list_forms"

    id = db.Column(db.Integer, primary_key=True)
    mailing_list_id = db.Column(db.Integer, db.ForeignKey("email_mailing_lists.id"), nullable=False)
    form_id = db.Column(db.Integer, db.ForeignKey("custom_forms.id"), nullable=False)

    form = db.relationship("CustomForm")


class EmailCampaign(SerializerMixin, db.Model):
    __tablename__ = "email_campaigns"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    mailing_list_id = db.Column(db.Integer, db.ForeignKey("email_mailing_lists.id"), nullable=False)
    form_id = db.Column(db.Integer, db.ForeignKey("custom_forms.id"), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    subject = db.Column(db.String(256), nullable=False)
    message = db.Column(db.Text, default="")
    status = db.Column(db.String(20), default="draft")
    # Status: draft, sending, sent, failed
    total_recipients = db.Column(db.Integer, default=0)
    sent_count = db.Column(db.Integer, default=0)
    sent_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow)

    mailing_list = db.relationship("MailingList")
    form = db.relationship("CustomForm")
    sends = db.relationship(
        "EmailCampaignSend", backref="campaign", lazy="dynamic", cascade="all, delete-orphan"
    )


class EmailCampaignSend(SerializerMixin, db.Model):
    __tablename__ = "email_campaign_sends"

    id = db.Column(db.Integer, primary_key=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey("email_campaigns.id"), nullable=False)
    contact_id = db.Column(db.Integer, db.ForeignKey("mailing_list_contacts.id"), nullable=False)
    email = db.Column(db.String(254), nullable=False)
    status = db.Column(db.String(20), default="pending")
    # Status: pending, sent, failed
    error_message = db.Column(db.Text, nullable=True)
    sent_at = db.Column(db.DateTime, nullable=True)
