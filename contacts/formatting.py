# contacts/formatting.py
"""WhatsApp reply texts (pt-BR, WhatsApp markdown: *bold*, _italic_)."""
from __future__ import annotations

from typing import Dict, List, Optional

from contacts.merge import MergeOutcome
from models.contact import Contact, Tag
from models.resolution import BridgeMatch, ResolutionKind, ResolutionResult

SEPARATOR = "─────────────────"
MAX_SUGGESTIONS_SHOWN = 3
MAX_CONTACTS_LISTED = 5

GREETING_REPLY = (
    "Olá! 👋 Eu organizo sua rede de contatos.\n\n"
    "📇 Envie um texto ou áudio sobre alguém que você conheceu e eu salvo pra você.\n"
    "🔎 Pergunte \"quem é o João?\" ou \"conhece algum advogado?\" para buscar.\n"
    "✏️ Diga \"atualiza o email da Maria\" para editar um contato."
)

REGISTER_INTENT_REPLY = (
    "Claro! 📝 Me envie as informações do contato: nome, empresa, cargo, telefone "
    "e onde vocês se conheceram.\n\n"
    "_Pode ser por texto ou áudio._"
)

QUERY_SUBJECT_MISSING = "🤔 Não entendi sobre quem você quer saber. Pode me dizer o nome da pessoa?"
UPDATE_SUBJECT_MISSING = "🤔 Não entendi qual contato você quer atualizar. Pode me dizer o nome da pessoa?"
EXTRACTION_FAILED = (
    "🤔 Não consegui identificar os dados do contato.\n\n"
    "💡 _Tente algo como: \"João Silva, advogado na XYZ, 21 99999-8888\"_"
)
UPDATE_NOT_UNDERSTOOD = (
    "🤔 Não consegui entender as informações. Tente enviar no formato:\n"
    "\"email: novo@email.com, empresa: Nova Empresa\""
)
GENERIC_FAILURE = "😕 Tive um problema para processar sua mensagem. Pode tentar novamente em instantes?"
AUDIO_NOT_UNDERSTOOD = "🎤 Não consegui entender o áudio. Por favor, envie sua mensagem por texto."

# contact field -> (emoji, label); display order of update prompts and confirmations
FIELD_LABELS = {
    "company": ("🏢", "Empresa"),
    "position": ("💼", "Cargo"),
    "phone": ("📱", "Telefone"),
    "email": ("📧", "Email"),
    "location": ("📍", "Local"),
    "notes": ("📝", "Notas"),
}


# --- search ------------------------------------------------------------------

def format_direct(contact: Contact) -> str:
    parts = [f"Encontrei *{contact.name}*"]
    if contact.position and contact.company:
        parts.append(f"- {contact.position} na {contact.company}")
    elif contact.position:
        parts.append(f"- {contact.position}")
    elif contact.company:
        parts.append(f"- {contact.company}")
    if contact.context:
        parts.append(f"\n📝 {contact.context}")
    return " ".join(parts)


def format_many_direct(contacts: List[Contact], query: str) -> str:
    lines = []
    for c in contacts[:MAX_CONTACTS_LISTED]:
        detail = " - ".join(p for p in (c.position, c.company) if p)
        lines.append(f"• *{c.name}*" + (f" ({detail})" if detail else ""))
    return f"Encontrei {len(contacts)} contatos para *{query}*:\n" + "\n".join(lines)


def format_bridge(bridges: List[BridgeMatch]) -> str:
    if len(bridges) == 1:
        b = bridges[0]
        about = b.connection.description or "conhece essa pessoa"
        return (
            f"Não tenho *{b.connection.name}* como contato direto, "
            f"mas *{b.mentioned_by.name}* mencionou: \"{about}\""
        )
    lines = [f"• *{b.connection.name}* (mencionado por {b.mentioned_by.name})" for b in bridges]
    return f"Encontrei {len(bridges)} menções:\n" + "\n".join(lines)


def format_not_found(query: str, suggestions: List[str]) -> str:
    query = query or "esse nome"
    if suggestions:
        listed = ", ".join(f"*{s}*" for s in suggestions[:MAX_SUGGESTIONS_SHOWN])
        return (
            f"🤔 Hmm, não encontrei ninguém chamado *{query}* na sua rede.\n\n"
            f"Você quis dizer {listed}?\n\n"
            "💡 _Ou envie informações sobre a pessoa para cadastrá-la._"
        )
    return (
        f"🤔 Não encontrei *{query}* na sua rede ainda.\n\n"
        "💡 _Envie um áudio ou texto com informações sobre essa pessoa e eu cadastro pra você!_"
    )


def format_search_result(result: ResolutionResult) -> str:
    if result.kind == ResolutionKind.DIRECT:
        if len(result.contacts) == 1:
            return format_direct(result.contacts[0])
        return format_many_direct(result.contacts, result.query)
    if result.kind == ResolutionKind.BRIDGE:
        return format_bridge(result.bridges)
    return format_not_found(result.query, [s.name for s in result.suggestions])


# --- update conversation -----------------------------------------------------

def format_update_prompt(contact: Contact, tags: Optional[List[Tag]] = None) -> str:
    lines = [f"📝 *Atualizar: {contact.name}*", "", "*Dados atuais:*"]
    for f, (emoji, label) in FIELD_LABELS.items():
        value = getattr(contact, f)
        if value:
            lines.append(f"{emoji} {label}: {value}")
    if tags:
        lines += ["", f"🏷️ *Pontos de conexão:* {', '.join(t.name for t in tags)}"]
    if contact.context:
        lines += ["", "💬 *Contexto:*", f"_{contact.context}_"]
    lines += [
        "",
        SEPARATOR,
        "✏️ Envie as informações que quer atualizar",
        "_Exemplo: \"email: novo@email.com, empresa: Nova Empresa\"_",
    ]
    return "\n".join(lines)


def format_update_confirmation(contact_name: str, changes: Dict[str, str]) -> str:
    lines = [f"{FIELD_LABELS[f][0]} {FIELD_LABELS[f][1]}: {changes[f]}" for f in FIELD_LABELS if f in changes]
    return f"✅ *{contact_name}* atualizado!\n\n" + "\n".join(lines)


def format_update_nothing(contact_name: str) -> str:
    return f"🤔 Não encontrei informações para atualizar. O que você quer mudar em *{contact_name}*?"


def format_update_target_missing(name: str) -> str:
    return f"🤔 Não encontrei *{name}* na sua rede.\n\nQual contato você quer atualizar?"


# --- contact saved -----------------------------------------------------------

def format_saved(outcome: MergeOutcome) -> str:
    c = outcome.contact
    if outcome.created:
        header = f"✅ Contato *{c.name}* salvo na sua rede!"
    elif outcome.updated_fields:
        header = f"✅ Contato *{c.name}* atualizado na sua rede!"
    else:
        header = f"👍 *{c.name}* já estava na sua rede, nada novo para salvar."

    lines = [header]
    details = [
        f"{emoji} {label}: {getattr(c, f)}"
        for f, (emoji, label) in FIELD_LABELS.items()
        if f != "notes" and getattr(c, f)
    ]
    if details:
        lines += [""] + details
    if outcome.tags:
        lines += ["", f"🏷️ *Tags:* {', '.join(t.name for t in outcome.tags)}"]
    if outcome.mentions:
        lines += ["", f"🔗 *Pessoas mencionadas:* {', '.join(m.name for m in outcome.mentions)}"]
    return "\n".join(lines)
