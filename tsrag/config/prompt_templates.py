"""
tsrag - Prompt Templates & Guardrail Vocabularies
===================================================
Centralised prompt management and scope-guardrail constants.  All
prompts live here so they can be versioned and reviewed independently
of application logic.

User-facing text is written in the deployment language (Brazilian
Portuguese); the book title and answer language are injected from
settings.

Exports
-------
DOMAIN_KEYWORDS, ANCHOR_KEYWORDS, OFF_TOPIC_TERMS,
OUT_OF_SCOPE_RESPONSE, NO_CONTEXT_RESPONSE,
SYSTEM_PROMPT, USER_PROMPT_TEMPLATE, CONTEXT_BLOCK_TEMPLATE,
CONTEXT_DELIMITER, EMPTY_CONTEXT_MESSAGE.
"""

from tsrag.config.settings import settings

# ══════════════════════════════════════════════════════════════════════
#  SCOPE GUARDRAIL: Keyword Vocabularies
# ══════════════════════════════════════════════════════════════════════
# Used by ScopeGuardrail.  Domain keywords match at the start of a word
# ("generic" also hits "generics"); off-topic terms must appear as whole
# tokens ("java" does not hit "javascript").

DOMAIN_KEYWORDS: frozenset[str] = frozenset({
    "typescript", "ts", "tsc", "tsconfig", "type", "interface", "generic", "enum", "class", "function",
    "const", "let", "var", "import", "export", "module", "namespace", "decorator", "async", "await",
    "promise", "array", "object", "string", "number", "boolean", "void", "never", "any", "unknown",
    "tuple", "union", "intersection", "literal", "readonly", "partial", "required", "pick", "omit",
    "record", "keyof", "typeof", "narrowing", "overload", "annotation", "inference",
})

# Terms that confirm the domain even when another language is named
ANCHOR_KEYWORDS: frozenset[str] = frozenset({"typescript", "ts", "tsc", "tsconfig"})

OFF_TOPIC_TERMS: frozenset[str] = frozenset({
    "python", "java", "c++", "c#", "rust", "golang", "ruby", "php", "kotlin", "swift",
})


# ══════════════════════════════════════════════════════════════════════
#  FIXED RESPONSES
# ══════════════════════════════════════════════════════════════════════

OUT_OF_SCOPE_RESPONSE: str = (
    f'Desculpe, eu só posso responder perguntas sobre TypeScript. Meu conhecimento é baseado no livro "{settings.BOOK_TITLE}". '
    "Por favor, faça uma pergunta relacionada a TypeScript."
)

NO_CONTEXT_RESPONSE: str = (
    f'Desculpe, não encontrei informações relevantes no livro "{settings.BOOK_TITLE}" para responder sua pergunta. '
    "Tente reformular ou fazer uma pergunta mais específica."
)


# ══════════════════════════════════════════════════════════════════════
#  SYSTEM PROMPT
# ══════════════════════════════════════════════════════════════════════

SYSTEM_PROMPT: str = f"""Você é um assistente especializado em TypeScript, baseado no livro "{settings.BOOK_TITLE}".

═══ REGRAS ESTRITAS ═══
• Responda APENAS sobre TypeScript.
• Use APENAS o contexto fornecido dos trechos do livro.
• Se a pergunta não for sobre TypeScript, recuse educadamente.
• Se o contexto não tiver informação suficiente, diga isso claramente.
• NÃO inclua referências a capítulos, seções ou páginas no texto da resposta.
• NÃO escreva frases como "Conforme o Capítulo X" ou "(página Y)"; as fontes são exibidas separadamente.

═══ FORMATO DA RESPOSTA ═══
• Explique o conceito de forma clara, didática e objetiva.
• Use exemplos de código quando apropriado.
• Se houver múltiplas abordagens, mencione as diferenças.
• Foque no conteúdo técnico, não nas citações.

Responda sempre em {settings.RESPONSE_LANGUAGE}."""


# ══════════════════════════════════════════════════════════════════════
#  CONTEXT & USER PROMPT TEMPLATES
# ══════════════════════════════════════════════════════════════════════

CONTEXT_BLOCK_TEMPLATE: str = """[Fonte {index}]
Capítulo: {chapter}
Seção: {section}
Página: {page}
Tipo: {type}
Relevância: {score:.4f}

Conteúdo:
{text}
"""

CONTEXT_DELIMITER: str = "\n---\n\n"

EMPTY_CONTEXT_MESSAGE: str = "Nenhum contexto relevante encontrado no livro."

USER_PROMPT_TEMPLATE: str = """══════════════════════════════════════════
CONTEXTO DO LIVRO
══════════════════════════════════════════
{context}

══════════════════════════════════════════
PERGUNTA DO USUÁRIO
══════════════════════════════════════════
{question}

──────────────────────────────────────────
Responda de forma clara e didática. NÃO mencione capítulos, páginas ou seções no texto.
As fontes serão exibidas separadamente pelo sistema.
"""
