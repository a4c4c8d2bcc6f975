"""Tests for the mailing/campaign action endpoint."""

import smtplib

import pytest

from esghub import db
from esghub.mailing import routes as mailing_routes
from esghub.models import CustomForm, EmailCampaign, EmailCampaignSend, MailingListContact


class FakeMailer:
    """Stands in for CampaignMailer; records sends, fails for listed addresses."""

    sent = []
    fail_for = set()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def send(self, to_email, subject, html):
        if to_email in self.fail_for:
            raise OSError("mailbox unavailable")
        self.sent.append({"to": to_email, "subject": subject, "html": html})


@pytest.fixture
def mailer(monkeypatch):
    FakeMailer.sent = []
    FakeMailer.fail_for = set()
    monkeypatch.setattr(mailing_routes.CampaignMailer, "from_config",
                        classmethod(lambda cls, config: FakeMailer()))
    return FakeMailer


def _action(client, action, **body):
    return client.post("/mailing/", json={"action": action, **body})


@pytest.fixture
def form_id(add, company_id):
    return add(CustomForm(company_id=company_id, title="Pesquisa de clima", is_published=True))[0]


@pytest.fixture
def list_id(client, form_id):
    resp = _action(client, "CREATE_MAILING_LIST", name="Fornecedores", formIds=[form_id])
    assert resp.status_code == 200
    return resp.get_json()["id"]


def test_requires_login(anon_client):
    assert _action(anon_client, "GET_MAILING_LISTS").status_code == 401


def test_unknown_action(client):
    resp = _action(client, "DROP_EVERYTHING")
    assert resp.status_code == 400
    assert "DROP_EVERYTHING" in resp.get_json()["error"]


def test_template(client):
    template = _action(client, "GET_TEMPLATE").get_json()["template"]
    assert template.splitlines()[0] == "email,nome,contato,departamento"


def test_create_list_requires_name(client):
    resp = _action(client, "CREATE_MAILING_LIST", name="  ")
    assert resp.status_code == 400


def test_list_lifecycle(client, list_id, form_id):
    lists = _action(client, "GET_MAILING_LISTS").get_json()
    assert [(ml["name"], ml["contact_count"], ml["form_count"]) for ml in lists] == [
        ("Fornecedores", 0, 1),
    ]

    resp = _action(client, "UPDATE_MAILING_LIST", listId=list_id, name="Fornecedores 2025",
                   formIds=[])
    assert resp.get_json()["name"] == "Fornecedores 2025"

    detail = _action(client, "GET_MAILING_LIST", listId=list_id).get_json()
    assert detail["forms"] == []
    assert detail["contacts"] == []

    assert _action(client, "DELETE_MAILING_LIST", listId=list_id).get_json() == {"success": True}
    assert _action(client, "GET_MAILING_LISTS").get_json() == []


def test_import_contacts_upserts_on_email(client, list_id, app):
    first = _action(client, "IMPORT_CONTACTS", listId=list_id,
                    csvContent="email;nome;contato\na@x.com;ACME;Ana\nb@x.com;Beta;Bruno")
    assert first.get_json() == {"imported": 2, "total": 2}

    second = _action(client, "IMPORT_CONTACTS", listId=list_id,
                     csvContent="email,contato\nA@X.com,Ana Maria")
    assert second.get_json() == {"imported": 1, "total": 1}

    with app.app_context():
        contacts = MailingListContact.query.order_by(MailingListContact.email).all()
        assert [(c.email, c.name) for c in contacts] == [("a@x.com", "Ana Maria"), ("b@x.com", "Bruno")]


def test_import_without_valid_contacts_fails(client, list_id):
    resp = _action(client, "IMPORT_CONTACTS", listId=list_id, csvContent="email\nnao-e-email")
    assert resp.status_code == 400
    assert "Nenhum contato" in resp.get_json()["error"]


def test_import_without_email_column_fails(client, list_id):
    resp = _action(client, "IMPORT_CONTACTS", listId=list_id, csvContent="nome\nACME")
    assert resp.status_code == 400
    assert "email" in resp.get_json()["error"]


def test_delete_contact(client, list_id):
    _action(client, "IMPORT_CONTACTS", listId=list_id, csvContent="email\na@x.com")
    contact_id = _action(client, "GET_MAILING_LIST", listId=list_id).get_json()["contacts"][0]["id"]

    assert _action(client, "DELETE_CONTACT", contactId=contact_id).get_json() == {"success": True}
    assert _action(client, "DELETE_CONTACT", contactId=contact_id).status_code == 400


def test_other_company_cannot_see_list(other_client, list_id):
    resp = _action(other_client, "GET_MAILING_LIST", listId=list_id)
    assert resp.status_code == 400
    assert _action(other_client, "GET_MAILING_LISTS").get_json() == []


def test_get_forms_lists_published_only(client, form_id, add, company_id):
    add(CustomForm(company_id=company_id, title="Rascunho", is_published=False))
    forms = _action(client, "GET_FORMS").get_json()
    assert forms == [{"id": form_id, "title": "Pesquisa de clima"}]


def _campaign(client, list_id, form_id, csv_content="email,contato\na@x.com,Ana\nb@x.com,Bruno"):
    _action(client, "IMPORT_CONTACTS", listId=list_id, csvContent=csv_content)
    resp = _action(client, "CREATE_CAMPAIGN", mailingListId=list_id, formId=form_id,
                   subject="Responda nossa pesquisa", message="Leva 5 minutos.")
    assert resp.status_code == 200
    return resp.get_json()


def test_create_campaign_counts_active_recipients(client, list_id, form_id):
    campaign = _campaign(client, list_id, form_id)
    assert campaign["status"] == "draft"
    assert campaign["total_recipients"] == 2

    campaigns = _action(client, "GET_CAMPAIGNS").get_json()
    assert campaigns[0]["mailing_list"]["name"] == "Fornecedores"
    assert campaigns[0]["form"]["title"] == "Pesquisa de clima"


def test_send_campaign(client, list_id, form_id, mailer, app):
    campaign = _campaign(client, list_id, form_id)

    resp = _action(client, "SEND_CAMPAIGN", campaignId=campaign["id"])
    assert resp.get_json() == {"success": True, "sent": 2, "total": 2}

    assert {m["to"] for m in mailer.sent} == {"a@x.com", "b@x.com"}
    html = mailer.sent[0]["html"]
    assert f"https://esg.example.com/form/{form_id}" in html
    assert "Responder Formulário" in html

    with app.app_context():
        stored = db.session.get(EmailCampaign, campaign["id"])
        assert stored.status == "sent"
        assert stored.sent_count == 2
        assert stored.sent_at is not None
        assert {s.status for s in stored.sends} == {"sent"}

    again = _action(client, "SEND_CAMPAIGN", campaignId=campaign["id"])
    assert again.status_code == 400


def test_send_campaign_uses_origin_header(client, list_id, form_id, mailer):
    campaign = _campaign(client, list_id, form_id)
    client.post("/mailing/", json={"action": "SEND_CAMPAIGN", "campaignId": campaign["id"]},
                headers={"Origin": "https://app.cliente.com.br"})
    assert f"https://app.cliente.com.br/form/{form_id}" in mailer.sent[0]["html"]


def test_send_campaign_records_failures(client, list_id, form_id, mailer, app):
    campaign = _campaign(client, list_id, form_id)
    mailer.fail_for = {"b@x.com"}

    resp = _action(client, "SEND_CAMPAIGN", campaignId=campaign["id"])
    assert resp.get_json() == {"success": True, "sent": 1, "total": 2}

    with app.app_context():
        failed = EmailCampaignSend.query.filter_by(email="b@x.com").one()
        assert failed.status == "failed"
        assert failed.error_message == "mailbox unavailable"


def test_send_campaign_all_failed(client, list_id, form_id, mailer, app):
    campaign = _campaign(client, list_id, form_id, csv_content="email\na@x.com")
    mailer.fail_for = {"a@x.com"}

    resp = _action(client, "SEND_CAMPAIGN", campaignId=campaign["id"])
    assert resp.get_json()["sent"] == 0

    with app.app_context():
        assert db.session.get(EmailCampaign, campaign["id"]).status == "failed"


def test_send_campaign_without_active_contacts(client, list_id, form_id, mailer, app):
    campaign = _campaign(client, list_id, form_id)
    with app.app_context():
        MailingListContact.query.update({"status": "unsubscribed"})
        db.session.commit()

    resp = _action(client, "SEND_CAMPAIGN", campaignId=campaign["id"])
    assert resp.status_code == 400
    assert "Nenhum contato ativo" in resp.get_json()["error"]

    with app.app_context():
        assert db.session.get(EmailCampaign, campaign["id"]).status == "failed"


def test_send_campaign_smtp_session_failure_fails_every_send(client, list_id, form_id, monkeypatch, app):
    campaign = _campaign(client, list_id, form_id)

    def refuse(self):
        raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    monkeypatch.setattr(mailing_routes.CampaignMailer, "__enter__", refuse)

    resp = _action(client, "SEND_CAMPAIGN", campaignId=campaign["id"])
    assert resp.status_code == 400

    with app.app_context():
        stored = db.session.get(EmailCampaign, campaign["id"])
        assert stored.status == "failed"
        assert stored.sent_count == 0
        sends = stored.sends.all()
        assert len(sends) == 2
        assert {s.status for s in sends} == {"failed"}
        assert all("bad credentials" in s.error_message for s in sends)
