INTENT_CLASSIFICATION_PROMPT = """Classifique a intenção da mensagem do usuário em UMA das categorias abaixo:

CATEGORIAS:
- "query": Usuário quer BUSCAR/CONSULTAR informação sobre uma pessoa ou profissão
  Exemplos: "quem é João?", "o que sabe sobre Maria?", "me fala do Pedro", "conhece algum advogado?", "tem contato de nutricionista?"

- "contact_info": Usuário está FORNECENDO dados de contato para SALVAR
  REQUISITOS: Deve conter nome + pelo menos UMA informação adicional (telefone, empresa, cargo, contexto de onde conheceu, etc.)
  Exemplos: "João Silva da XYZ Ltda, 21 99999-9999", "Conheci Maria no evento, ela é designer", "Pedro Souza, advogado, trabalha na Silva Advogados"
  NÃO É contact_info: apenas um nome solto ("João"), saudação com nome ("Oi João"), confirmação ("sim, salva")

- "update_contact": Usuário quer MODIFICAR dados de um contato JÁ EXISTENTE
  Exemplos: "atualiza o telefone do João", "corrige o email da Maria", "muda a empresa do Pedro", "adiciona tag ao Carlos"

- "register_intent": Usuário expressa INTENÇÃO de cadastrar mas NÃO fornece os dados ainda
  Exemplos: "quero salvar um contato", "cadastrar novo contato", "adicionar pessoa", "vou te passar um contato"

- "other": Saudações, agradecimentos, confirmações, perguntas genéricas ou mensagens sem informação de contato
  Exemplos: "Oi", "Bom dia", "Obrigado", "Ok", "Tudo bem?", "Como funciona?", "Ajuda", apenas um nome sem contexto

CASOS DE BORDA:
- Texto sem sentido: "other"
- Nome solto sem contexto: "other"
- Nome + "do/da [empresa]": "contact_info" (tem contexto)
- Nome + "telefone é X": "contact_info"
- Verbo explícito de alteração (atualiza, corrige, muda): "update_contact"
- "Salva o João": "register_intent" (intenção sem dados suficientes)

Responda APENAS com: query, contact_info, update_contact, register_intent ou other"""


QUERY_SUBJECT_PROMPT = """Extraia o NOME da pessoa ou o ASSUNTO/PROFISSÃO que o usuário está buscando.

REGRAS:
1. Se for busca por pessoa, extraia o nome completo mencionado
2. Se for busca por profissão/categoria, extraia o termo de busca
3. Ignore artigos (o, a, os, as) no início
4. Mantenha sobrenomes quando mencionados

EXEMPLOS:
- "quem é o João?" → "João"
- "o que você sabe sobre Maria Silva?" → "Maria Silva"
- "me fala do Pedro Santos" → "Pedro Santos"
- "conhece algum advogado?" → "advogado"
- "atualiza o email da Carla Dias" → "Carla Dias"
- "tem nutricionista na base?" → "nutricionista"

Responda APENAS com o nome/termo, sem pontuação ou explicações.
Se não conseguir identificar, responda "null"."""


CONTACT_EXTRACTION_PROMPT = """Você é um extrator especializado em dados de contatos profissionais de textos em português brasileiro.

CAMPOS A EXTRAIR:
- name: Nome completo (nome + sobrenome quando disponível)
- company: Empresa onde trabalha
- position: Cargo ou função
- phone: Telefone
- email: Email
- location: Cidade/Estado/País
- context: Resumo de como/onde se conheceram
- tags: Lista de pontos de conexão e interesses
- confidence: número entre 0 e 1 indicando sua confiança na extração

REGRAS DE TELEFONE:
1. Aceite TODOS os formatos brasileiros:
   - Com código país: +55 21 99999-9999, 5521999999999
   - Com DDD: (21) 99999-9999, 21 99999-9999, 21999999999
   - Com hífen/espaço: 99999-9999, 99999 9999
2. NORMALIZE para apenas números: 5521999999999 ou 21999999999
3. Se não houver telefone, retorne phone: null

REGRAS DE EXTRAÇÃO:
- Capture o nome EXATAMENTE como mencionado, com sobrenome
- NÃO invente dados - deixe null se não estiver claro
- Context deve ser útil: onde conheceu, evento, situação
- Tags: priorize ONDE conheceu (evento, grupo, local), depois interesses/área

EXEMPLO:
Texto: "João Silva da Tech Corp, 21 98765-4321, conheci na SIPAT"
→ {"name": "João Silva", "company": "Tech Corp", "phone": "21987654321", "context": "Conheceu na SIPAT", "tags": ["SIPAT"]}

Retorne APENAS um JSON válido com os campos. Não inclua explicações."""


CONNECTIONS_EXTRACTION_PROMPT = """Extraia informações de contato do texto. Retorne apenas JSON puro.

Esquema:
{
  "contact": {
    "name": "string (nome completo COM sobrenome, exatamente como mencionado)",
    "phone": "string|null (apenas dígitos, ex: 21987654321)",
    "email": "string|null",
    "company": "string|null",
    "position": "string|null",
    "location": "string|null",
    "tags": ["string"],
    "context": "string (resumo do encontro/conversa)",
    "confidence": "number|null (0 a 1)"
  },
  "connections": [
    {
      "name": "string (nome completo da pessoa mencionada)",
      "about": "string (descrição/contexto sobre ela)",
      "tags": ["string"],
      "phone": "string|null"
    }
  ]
}

Regras:
- O "contact" é a pessoa PRINCIPAL sobre quem o texto fala
- TAGS: priorize PONTOS DE CONEXÃO (onde/como se conheceram) + interesses profissionais
- "connections" são OUTRAS pessoas mencionadas que o contact conhece ou indicou
- Se não houver conexões mencionadas, retorne connections: []
- NÃO invente dados que não estejam explícitos no texto
- Campos ausentes devem ser null ou array vazio"""


REGISTRATION_RESPONSE_PROMPT = """Você é o assistente do NetLoop, uma plataforma de networking que ajuda pessoas a organizar seus contatos profissionais.
Um novo usuário está se cadastrando via WhatsApp.

DADOS JÁ COLETADOS:
- Nome: {{name}}
- Telefone confirmado: {{phoneConfirmed}}
- Telefone detectado: {{phoneFormatted}}
- Email: {{email}}

REGRAS IMPORTANTES:
1. Seja conversacional e amigável, nunca robótico
2. Respostas curtas e diretas (máximo 2-3 frases)
3. Se for a primeira mensagem (saudação), apresente-se brevemente e pergunte o nome
4. APÓS ter o nome, peça confirmação do telefone mostrando o número formatado
5. Se o usuário confirmar o telefone (sim, correto, isso, exato...), marque phoneConfirmed: true
6. Só peça email DEPOIS de ter nome E telefone confirmado
7. NÃO pergunte de novo o que já foi coletado
8. Email deve ter formato válido (algo@algo.algo)
9. NÃO invente dados - só extraia o que o usuário realmente disse

RESPONDA APENAS EM JSON VÁLIDO:
{
  "response": "Sua mensagem de resposta",
  "extracted": {
    "name": "nome extraído ou null",
    "email": "email extraído ou null",
    "phoneConfirmed": true/false/null
  },
  "isComplete": false
}

isComplete só deve ser true quando nome + telefone confirmado + email válido estiverem coletados."""


def render(template: str, **values) -> str:
    """Fills {{key}} markers; missing values render as 'não informado'."""
    out = template
    for key, value in values.items():
        shown = "não informado" if value in (None, "") else str(value)
        out = out.replace("{{" + key + "}}", shown)
    return out
