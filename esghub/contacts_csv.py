"""CSV contact import for mailing lists."""

import csv
import io
import re

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# "nome" holds the organisation, "contato" the person
EMAIL_COLUMN = "email"
COMPANY_COLUMN = "nome"
CONTACT_COLUMN = "contato"

CSV_TEMPLATE = """email,nome,contato,departamento
joao@empresa.com,Empresa Alfa,João Silva,RH
maria@empresa.com,Empresa Beta,Maria Santos,Financeiro
carlos@empresa.com,Empresa Gama,Carlos Oliveira,TI"""


def detect_delimiter(header_line):
    return ";" if ";" in header_line else ","


def parse_contacts_csv(csv_content):
    """
    Parse CSV text into contact dicts.

    Delimiter is ';' when the header line has one, else ','. Column names are
    matched case-insensitively; an 'email' column is required. Rows whose
    email is missing or malformed are dropped.

    Returns list of {"email", "name", "company_name", "metadata"}; metadata
    holds any other non-empty columns and is None when there are none.
    """
    text = (csv_content or "").strip()
    lines = text.splitlines()
    if len(lines) < 2:
        return []

    delimiter = detect_delimiter(lines[0])
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    headers = [h.strip().lower() for h in next(reader)]

    if EMAIL_COLUMN not in headers:
        raise ValueError("CSV deve conter uma coluna 'email'")

    email_idx = headers.index(EMAIL_COLUMN)
    company_idx = headers.index(COMPANY_COLUMN) if COMPANY_COLUMN in headers else None
    contact_idx = headers.index(CONTACT_COLUMN) if CONTACT_COLUMN in headers else None
    known = {email_idx, company_idx, contact_idx}

    contacts = []
    for row in reader:
        values = [v.strip() for v in row]
        if not any(values):
            continue

        def _value(idx):
            if idx is None or idx >= len(values):
                return None
            return values[idx] or None

        email = _value(email_idx)
        if not email or not EMAIL_RE.match(email):
            continue

        metadata = {
            header: values[idx]
            for idx, header in enumerate(headers)
            if idx not in known and idx < len(values) and values[idx]
        }

        contacts.append({
            "email": email.lower(),
            "name": _value(contact_idx),
            "company_name": _value(company_idx),
            "metadata": metadata or None,
        })

    return contacts
