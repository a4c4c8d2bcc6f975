import json
import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from esghub import db
from esghub.intent_resolver import resolve_intent
from esghub.models import Company

logger = logging.getLogger(__name__)

chat_bp = Blueprint("chat", __name__, url_prefix="/chat")

APOLOGY_MESSAGE = "Desculpe, ocorreu um erro ao processar sua solicitação. Tente novamente."

ESG_SYSTEM_PROMPT = """Você é o assistente de IA de uma plataforma de gestão ESG (Ambiental, Social e Governança) usada por empresas brasileiras.

## SUA FUNÇÃO
- Responder dúvidas sobre os dados ESG da empresa: licenças ambientais, inventário de emissões de GEE, metas, tarefas de conformidade, riscos e oportunidades, não conformidades, auditorias, resíduos, energia, pessoas, treinamentos, incidentes, projetos sociais e stakeholders
- Interpretar os dados fornecidos no contexto e apontar prioridades práticas
- Explicar conceitos (GHG Protocol, GRI, ISSB/IFRS S1-S2, Resolução CVM 193, ISO 14001) quando perguntado

## DIRETRIZES
- Responda em português do Brasil, de forma objetiva e prática
- Baseie-se SOMENTE nos dados do contexto quando falar da empresa; se um dado não estiver no contexto, diga que não está disponível
- Nunca invente números
- Destaque itens urgentes (vencimentos, atrasos, riscos críticos) primeiro
- Quando houver informação de mercado, deixe claro que é uma referência geral
- Use listas curtas e cite valores com unidades (tCO2e, kWh, kg, %)"""


def _build_system_prompt(company, resolved, current_page):
    """Append company, page and resolved data context to the base prompt."""
    lines = [
        ESG_SYSTEM_PROMPT,
        "",
        "CONTEXTO ATUAL:",
        f"Empresa: {company.name}" + (f" (setor: {company.sector})" if company.sector else ""),
        f"Página atual: {current_page or 'não informada'}",
        f"Resumo dos dados: {resolved['context']}",
    ]
    if resolved["relevant_data"]:
        lines.append(
            "Dados relevantes (JSON): "
            + json.dumps(resolved["relevant_data"], ensure_ascii=False, default=str)[:12000]
        )
    if resolved["market_info"]:
        lines.append(f"Informação de mercado (referência geral): {resolved['market_info']}")
    return "\n".join(lines)


def _generate_answer(system, messages):
    """Call the LLM and return the answer text."""
    api_key = current_app.config.get("ANTHROPIC_API_KEY", "")
    if not api_key:
        raise RuntimeError("ANTHROPIC_API_KEY not configured")

    import anthropic
    client = anthropic.Anthropic(api_key=api_key, timeout=90.0)

    response = client.messages.create(
        model=current_app.config["ANTHROPIC_MODEL"],
        max_tokens=current_app.config["ANTHROPIC_MAX_TOKENS"],
        system=system,
        messages=messages,
    )
    return response.content[0].text


@chat_bp.route("/ask", methods=["POST"])
@login_required
def ask():
    """Answer a question about the company's ESG data."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    message = data.get("message")
    if not isinstance(message, str) or not message.strip():
        return jsonify({"error": "Nenhuma mensagem enviada.", "response": None}), 400
    message = message.strip()

    history = data.get("history") or []
    if not isinstance(history, list) or not all(isinstance(m, dict) for m in history):
        return jsonify({"error": "Histórico inválido.", "response": None}), 400

    user_id = data.get("userId")
    if user_id is not None and str(user_id) != str(current_user.id):
        return jsonify({"error": "Não autorizado", "response": None}), 401

    if not current_user.company_id:
        return jsonify({
            "error": "Usuário sem empresa associada.",
            "response": None,
        }), 400

    current_page = data.get("currentPage")
    if not isinstance(current_page, str):
        current_page = None

    try:
        company = db.session.get(Company, current_user.company_id)
        resolved = resolve_intent(message, company.id, current_page)
        system = _build_system_prompt(company, resolved, current_page)

        messages = []
        limit = current_app.config.get("CHAT_HISTORY_LIMIT", 10)
        for msg in history[-limit:]:
            if msg.get("role") in ("user", "assistant") and msg.get("content"):
                messages.append({"role": msg["role"], "content": msg["content"]})
        messages.append({"role": "user", "content": message})

        answer = _generate_answer(system, messages)

        return jsonify({
            "response": answer,
            "context": resolved["context"],
            "marketInfo": resolved["market_info"],
            "suggestedActions": resolved["suggested_actions"],
            "dataFound": bool(resolved["relevant_data"]),
            "companyName": company.name,
        })

    except Exception as e:
        logger.error(f"Chat API error: {e}")
        return jsonify({"error": str(e), "response": APOLOGY_MESSAGE}), 500
