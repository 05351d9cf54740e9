# agent/registration/messages.py
# Texts sent to an unregistered number while it signs up (pt-BR).

WELCOME = """Olá! Bem-vindo ao *NetLoop*! 👋

O primeiro sistema de conexões de networking do Brasil.

Para começar, por favor me diga seu *nome completo*:"""

ASK_NAME = "Antes de continuar, preciso do seu *nome completo*. Como você se chama?"

NAME_TOO_SHORT = "Por favor, informe seu nome completo (mínimo 3 caracteres):"

ASK_PHONE_CONFIRMATION = """Detectei que seu número é *{phone}*.

Esse é o número que você quer usar no NetLoop? Responda *sim* para confirmar."""

PHONE_NOT_CONFIRMED = """Sem problemas! O cadastro usa o número deste WhatsApp (*{phone}*).

Se quiser usar outro número, envie a mensagem a partir dele. Para continuar com este, responda *sim*."""

NAME_ACCEPTED = """Ótimo, {first_name}! 😊

Agora, por favor informe seu *email*:"""

ASK_EMAIL = "Para finalizar, qual é o seu *email*?"

EMAIL_INVALID = "Email inválido. Por favor, informe um email válido (ex: nome@email.com):"

EMAIL_TAKEN = """Este email já está cadastrado no sistema.

Se você já tem conta, acesse pelo app.
Caso contrário, use outro email:"""

COMPLETED = """✅ *Cadastro concluído com sucesso!*

Seus dados:
👤 Nome: {name}
📧 Email: {email}

Sua senha temporária: *{password}*

Acesse o app e altere sua senha.
Agora você pode me enviar contatos para adicionar à sua rede! 🚀"""
