"""
Market intelligence snippets for the ESG assistant.

Returns short, static reference texts chosen by keyword; nothing is
fetched. ``search_market_info`` is the single entry point so a real
search provider can be plugged in behind it.
"""

MARKET_KEYWORDS = (
    "mercado", "benchmark", "setor", "regulament", "legislação", "legislacao",
    "tendência", "tendencia", "comparar", "comparação", "comparacao", "concorr",
)

# Checked in order; first match wins
MARKET_SNIPPETS = [
    {
        "keywords": ("carbon", "emiss", "co2", "gee", "crédito"),
        "text": (
            "Mercado de carbono: o Brasil instituiu o Sistema Brasileiro de Comércio de "
            "Emissões (SBCE, Lei 15.042/2024), com obrigação de relato para emissores acima "
            "de 10 mil tCO2e/ano e de conciliação acima de 25 mil tCO2e/ano. O Programa "
            "Brasileiro GHG Protocol segue como referência para inventários."
        ),
    },
    {
        "keywords": ("regulament", "legisla", "norma", "lei ", "cvm"),
        "text": (
            "Regulamentação: a Resolução CVM 193/2023 adota os padrões ISSB (IFRS S1 e S2) "
            "para relatórios de sustentabilidade, voluntários a partir de 2024 e obrigatórios "
            "para companhias abertas a partir dos exercícios iniciados em 2026, com "
            "asseguração limitada."
        ),
    },
    {
        "keywords": ("benchmark", "setor", "comparar", "comparação", "comparacao", "concorr"),
        "text": (
            "Benchmark setorial: empresas líderes do ISE B3 publicam inventário de emissões "
            "escopos 1 e 2 auditado, metas de redução com ano-base definido, taxa de "
            "reciclagem de resíduos acima de 70% e relato no padrão GRI."
        ),
    },
    {
        "keywords": ("tendência", "tendencia"),
        "text": (
            "Tendências ESG: maior exigência de dados verificáveis pela cadeia de valor "
            "(escopo 3), integração de riscos climáticos à gestão de riscos corporativa e "
            "crescimento de financiamentos vinculados a metas de sustentabilidade."
        ),
    },
]

DEFAULT_MARKET_SNIPPET = (
    "Contexto de mercado: investidores e reguladores priorizam transparência, metas "
    "mensuráveis e asseguração independente dos indicadores ESG."
)


def is_market_question(message):
    text = (message or "").lower()
    return any(kw in text for kw in MARKET_KEYWORDS)


def search_market_info(message):
    """Canned market snippet for market-like questions, else None."""
    if not is_market_question(message):
        return None
    text = message.lower()
    for snippet in MARKET_SNIPPETS:
        if any(kw in text for kw in snippet["keywords"]):
            return snippet["text"]
    return DEFAULT_MARKET_SNIPPET
