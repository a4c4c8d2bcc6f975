import logging
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from esghub import db
from esghub.contacts_csv import CSV_TEMPLATE, parse_contacts_csv
from esghub.mailer import CampaignMailer, render_campaign_email
from esghub.models import (
    CustomForm, EmailCampaign, EmailCampaignSend, MailingList, MailingListContact,
    MailingListForm,
)

logger = logging.getLogger(__name__)

mailing_bp = Blueprint("mailing", __name__, url_prefix="/mailing")


def _get_list(company_id, list_id):
    mailing_list = MailingList.query.filter_by(id=list_id, company_id=company_id).first()
    if not mailing_list:
        raise ValueError("Lista de e-mails não encontrada")
    return mailing_list


def _link_forms(mailing_list, company_id, form_ids):
    """Replace the list's form links with the given company forms."""
    MailingListForm.query.filter_by(mailing_list_id=mailing_list.id).delete()
    for form_id in form_ids or []:
        form = CustomForm.query.filter_by(id=form_id, company_id=company_id).first()
        if not form:
            logger.warning(f"Skipping unknown form {form_id} for list {mailing_list.id}")
            continue
        db.session.add(MailingListForm(mailing_list_id=mailing_list.id, form_id=form.id))


def _form_url(form_id):
    origin = request.headers.get("Origin") or current_app.config["PUBLIC_BASE_URL"]
    return f"{origin.rstrip('/')}/form/{form_id}"


# ---------------------------------------------------------------------------
# Actions: (body, company_id) -> JSON-serialisable result
# ---------------------------------------------------------------------------

def get_template(body, company_id):
    return {"template": CSV_TEMPLATE}


def get_mailing_lists(body, company_id):
    lists = (
        MailingList.query.filter_by(company_id=company_id)
        .order_by(MailingList.created_at.desc())
        .all()
    )
    result = []
    for ml in lists:
        item = ml.to_dict()
        item["contact_count"] = ml.contacts.count()
        item["form_count"] = ml.form_links.count()
        result.append(item)
    return result


def get_mailing_list(body, company_id):
    ml = _get_list(company_id, body.get("listId"))
    contacts = ml.contacts.order_by(MailingListContact.created_at.desc()).all()
    result = ml.to_dict()
    result["contacts"] = [c.to_dict() for c in contacts]
    result["forms"] = [
        {"id": link.form.id, "title": link.form.title, "is_published": link.form.is_published}
        for link in ml.form_links.all()
    ]
    return result


def create_mailing_list(body, company_id):
    name = (body.get("name") or "").strip()
    if not name:
        raise ValueError("Nome da lista é obrigatório")

    ml = MailingList(
        company_id=company_id,
        created_by_user_id=current_user.id,
        name=name,
        description=body.get("description") or "",
    )
    db.session.add(ml)
    db.session.flush()
    if body.get("formIds"):
        _link_forms(ml, company_id, body["formIds"])
    db.session.commit()
    logger.info(f"Created mailing list {ml.id} for company {company_id}")
    return ml.to_dict()


def update_mailing_list(body, company_id):
    ml = _get_list(company_id, body.get("listId"))
    if "name" in body:
        name = (body.get("name") or "").strip()
        if not name:
            raise ValueError("Nome da lista é obrigatório")
        ml.name = name
    if "description" in body:
        ml.description = body.get("description") or ""
    if body.get("formIds") is not None:
        _link_forms(ml, company_id, body["formIds"])
    db.session.commit()
    return ml.to_dict()


def delete_mailing_list(body, company_id):
    ml = _get_list(company_id, body.get("listId"))
    for campaign in EmailCampaign.query.filter_by(mailing_list_id=ml.id).all():
        db.session.delete(campaign)
    db.session.delete(ml)
    db.session.commit()
    return {"success": True}


def import_contacts(body, company_id):
    ml = _get_list(company_id, body.get("listId"))
    contacts = parse_contacts_csv(body.get("csvContent") or "")
    if not contacts:
        raise ValueError("Nenhum contato válido encontrado no CSV")

    existing = {c.email: c for c in ml.contacts.all()}
    imported = 0
    for contact in contacts:
        row = existing.get(contact["email"])
        if row is None:
            row = MailingListContact(mailing_list_id=ml.id, email=contact["email"])
            db.session.add(row)
            existing[contact["email"]] = row
        row.name = contact["name"]
        row.company_name = contact["company_name"]
        row.extra_fields = contact["metadata"] or {}
        row.status = "active"
        imported += 1

    db.session.commit()
    logger.info(f"Imported {imported} contacts into list {ml.id}")
    return {"imported": imported, "total": len(contacts)}


def delete_contact(body, company_id):
    contact = (
        MailingListContact.query.join(MailingList)
        .filter(MailingListContact.id == body.get("contactId"))
        .filter(MailingList.company_id == company_id)
        .first()
    )
    if not contact:
        raise ValueError("Contato não encontrado")
    EmailCampaignSend.query.filter_by(contact_id=contact.id).delete()
    db.session.delete(contact)
    db.session.commit()
    return {"success": True}


def get_campaigns(body, company_id):
    campaigns = (
        EmailCampaign.query.filter_by(company_id=company_id)
        .order_by(EmailCampaign.created_at.desc())
        .all()
    )
    result = []
    for campaign in campaigns:
        item = campaign.to_dict()
        item["mailing_list"] = {"id": campaign.mailing_list.id, "name": campaign.mailing_list.name}
        item["form"] = {"id": campaign.form.id, "title": campaign.form.title} if campaign.form else None
        result.append(item)
    return result


def create_campaign(body, company_id):
    ml = _get_list(company_id, body.get("mailingListId"))
    subject = (body.get("subject") or "").strip()
    if not subject:
        raise ValueError("Assunto é obrigatório")

    form_id = body.get("formId")
    if form_id is not None and not CustomForm.query.filter_by(id=form_id, company_id=company_id).first():
        raise ValueError("Formulário não encontrado")

    recipients = ml.contacts.filter_by(status="active").count()
    campaign = EmailCampaign(
        company_id=company_id,
        mailing_list_id=ml.id,
        form_id=form_id,
        subject=subject,
        message=body.get("message") or "",
        status="draft",
        total_recipients=recipients,
        created_by_user_id=current_user.id,
    )
    db.session.add(campaign)
    db.session.commit()
    logger.info(f"Created campaign {campaign.id} ({recipients} recipients)")
    return campaign.to_dict()


def send_campaign(body, company_id):
    campaign = EmailCampaign.query.filter_by(
        id=body.get("campaignId"), company_id=company_id
    ).first()
    if not campaign:
        raise ValueError("Campanha não encontrada")
    if campaign.status in ("sent", "sending"):
        raise ValueError("Campanha já enviada ou em andamento")

    campaign.status = "sending"
    db.session.commit()

    contacts = (
        MailingListContact.query.filter_by(mailing_list_id=campaign.mailing_list_id, status="active")
        .all()
    )
    if not contacts:
        campaign.status = "failed"
        db.session.commit()
        raise ValueError("Nenhum contato ativo encontrado")

    sends = {}
    for contact in contacts:
        send = EmailCampaignSend(
            campaign_id=campaign.id, contact_id=contact.id, email=contact.email, status="pending"
        )
        db.session.add(send)
        sends[contact.id] = send
    db.session.commit()

    form_url = _form_url(campaign.form_id)
    sent_count = 0
    try:
        with CampaignMailer.from_config(current_app.config) as mailer:
            for contact in contacts:
                send = sends[contact.id]
                try:
                    html = render_campaign_email(
                        campaign.subject, campaign.message, form_url, contact.name
                    )
                    mailer.send(contact.email, campaign.subject, html)
                    send.status = "sent"
                    send.sent_at = datetime.now(timezone.utc)
                    sent_count += 1
                    logger.info(f"Campaign {campaign.id}: email sent to {contact.email}")
                except Exception as e:
                    logger.error(f"Campaign {campaign.id}: failed to send to {contact.email}: {e}")
                    send.status = "failed"
                    send.error_message = str(e)
                db.session.commit()
    except Exception as e:
        logger.error(f"Campaign {campaign.id}: SMTP session failed: {e}")
        for send in sends.values():
            if send.status == "pending":
                send.status = "failed"
                send.error_message = str(e)
        raise
    finally:
        campaign.status = "sent" if sent_count > 0 else "failed"
        campaign.sent_count = sent_count
        campaign.sent_at = datetime.now(timezone.utc)
        db.session.commit()

    logger.info(f"Campaign {campaign.id} completed: {sent_count}/{len(contacts)} emails sent")
    return {"success": True, "sent": sent_count, "total": len(contacts)}


def get_forms(body, company_id):
    forms = (
        CustomForm.query.filter_by(company_id=company_id, is_published=True)
        .order_by(CustomForm.title)
        .all()
    )
    return [{"id": f.id, "title": f.title} for f in forms]


ACTIONS = {
    "GET_TEMPLATE": get_template,
    "GET_MAILING_LISTS": get_mailing_lists,
    "GET_MAILING_LIST": get_mailing_list,
    "CREATE_MAILING_LIST": create_mailing_list,
    "UPDATE_MAILING_LIST": update_mailing_list,
    "DELETE_MAILING_LIST": delete_mailing_list,
    "IMPORT_CONTACTS": import_contacts,
    "DELETE_CONTACT": delete_contact,
    "GET_CAMPAIGNS": get_campaigns,
    "CREATE_CAMPAIGN": create_campaign,
    "SEND_CAMPAIGN": send_campaign,
    "GET_FORMS": get_forms,
}


@mailing_bp.route("/", methods=["POST"])
@login_required
def dispatch():
    """Single RPC-style endpoint: body {action, ...}."""
    body = request.get_json(silent=True) or {}
    action = body.get("action")
    company_id = current_user.company_id

    logger.info(f"Mailing action: {action}, user: {current_user.id}, company: {company_id}")

    if not company_id:
        return jsonify({"error": "Usuário sem empresa associada"}), 400

    handler = ACTIONS.get(action)
    if handler is None:
        return jsonify({"error": f"Ação desconhecida: {action}"}), 400

    try:
        return jsonify(handler(body, company_id))
    except Exception as e:
        db.session.rollback()
        logger.error(f"Mailing action {action} failed: {e}")
        return jsonify({"error": str(e)}), 400
