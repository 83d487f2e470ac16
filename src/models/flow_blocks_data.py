"""
Static catalog of the block types available in the flow builder.
Order matters: it is the palette order and the order categories are listed in.
"""

FLOW_BLOCKS_DATA = [
    {
        "type": "inicio",
        "label": "Início",
        "icon": "Play",
        "category": "Básico",
        "color": "green",
        "description": "Bloco inicial do fluxo",
        "configFields": [
            {"key": "mensagemInicial", "label": "Mensagem Inicial", "kind": "textarea", "required": True},
        ],
    },
    {
        "type": "mensagem",
        "label": "Mensagem",
        "icon": "MessageSquare",
        "category": "Comunicação",
        "color": "blue",
        "description": "Enviar uma mensagem de texto",
        "configFields": [
            {"key": "texto", "label": "Texto da Mensagem", "kind": "textarea", "required": True},
        ],
    },
    {
        "type": "opcoes",
        "label": "Opções",
        "icon": "List",
        "category": "Lógica",
        "color": "blue",
        "description": "Lista de opções numeradas para o usuário escolher",
        "configFields": [
            {"key": "pergunta", "label": "Pergunta", "kind": "textarea", "required": True},
            {"key": "opcoes", "label": "Opções", "kind": "options", "required": True},
            {"key": "tipoApresentacao", "label": "Tipo de Apresentação", "kind": "select",
             "options": ["lista", "botoes"], "required": True},
        ],
    },
    {
        "type": "decisao",
        "label": "Decisão",
        "icon": "GitBranch",
        "category": "Lógica",
        "color": "yellow",
        "description": "Pergunta com opções Sim/Não",
        "configFields": [
            {"key": "pergunta", "label": "Pergunta", "kind": "textarea", "required": True},
            {"key": "opcaoSim", "label": "Texto da Opção \"Sim\"", "kind": "text", "required": True},
            {"key": "opcaoNao", "label": "Texto da Opção \"Não\"", "kind": "text", "required": True},
            {"key": "tipoResposta", "label": "Tipo de Resposta", "kind": "select",
             "options": ["texto", "botoes"], "required": True},
        ],
    },
    {
        "type": "horario",
        "label": "Horário de Funcionamento",
        "icon": "Clock",
        "category": "Condições",
        "color": "purple",
        "description": "Verificar horário de funcionamento",
        "configFields": [
            {"key": "dias", "label": "Dias da Semana", "kind": "diasSemana", "required": True},
            {"key": "horarios", "label": "Intervalos de Horário", "kind": "horarios", "required": True},
        ],
    },
    {
        "type": "dentro_horario",
        "label": "Dentro do Horário",
        "icon": "CheckCircle",
        "category": "Condições",
        "color": "green",
        "description": "Mensagem enviada dentro do horário de atendimento",
        "configFields": [
            {"key": "texto", "label": "Mensagem", "kind": "textarea", "required": True},
        ],
    },
    {
        "type": "fora_horario",
        "label": "Fora do Horário",
        "icon": "XCircle",
        "category": "Condições",
        "color": "red",
        "description": "Mensagem enviada fora do horário de atendimento",
        "configFields": [
            {"key": "texto", "label": "Mensagem", "kind": "textarea", "required": True},
        ],
    },
    {
        "type": "imagem",
        "label": "Envio de Imagem",
        "icon": "Image",
        "category": "Comunicação",
        "color": "pink",
        "description": "Enviar uma imagem",
        "configFields": [
            {"key": "mensagem", "label": "Mensagem", "kind": "textarea", "required": False},
            {"key": "imagem", "label": "Imagem", "kind": "file", "accept": "image/*", "required": True},
        ],
    },
    {
        "type": "audio",
        "label": "Envio de Áudio",
        "icon": "Mic",
        "category": "Comunicação",
        "color": "orange",
        "description": "Enviar um áudio",
        "configFields": [
            {"key": "mensagem", "label": "Mensagem", "kind": "textarea", "required": False},
            {"key": "audio", "label": "Áudio", "kind": "file", "accept": "audio/*", "required": True},
        ],
    },
    {
        "type": "documento",
        "label": "Envio de Documento",
        "icon": "FileText",
        "category": "Comunicação",
        "color": "gray",
        "description": "Enviar um documento",
        "configFields": [
            {"key": "mensagem", "label": "Mensagem", "kind": "textarea", "required": False},
            {"key": "documento", "label": "Documento", "kind": "file",
             "accept": ".pdf,.doc,.docx,.xls,.xlsx,.ppt,.pptx", "required": True},
        ],
    },
    {
        "type": "api",
        "label": "API",
        "icon": "Zap",
        "category": "Integração",
        "color": "yellow",
        "description": "Chamar uma API externa",
        "configFields": [
            {"key": "url", "label": "URL da API", "kind": "text", "required": True},
            {"key": "metodo", "label": "Método HTTP", "kind": "select",
             "options": ["GET", "POST", "PUT", "DELETE"], "required": True},
            {"key": "headers", "label": "Headers (JSON)", "kind": "textarea", "required": False},
            {"key": "body", "label": "Body (JSON)", "kind": "textarea", "required": False},
        ],
    },
    {
        "type": "variavel",
        "label": "Variável",
        "icon": "Variable",
        "category": "Dados",
        "color": "purple",
        "description": "Definir ou capturar variáveis",
        "configFields": [
            {"key": "nome", "label": "Nome da Variável", "kind": "text", "required": True},
            {"key": "valor", "label": "Valor", "kind": "text", "required": True},
            {"key": "tipo", "label": "Tipo", "kind": "select",
             "options": ["string", "number", "boolean"], "required": True},
        ],
    },
    {
        "type": "condicao",
        "label": "Condição",
        "icon": "Target",
        "category": "Condições",
        "color": "cyan",
        "description": "Avaliar condições de variáveis",
        "configFields": [
            {"key": "variavel", "label": "Variável", "kind": "text", "required": True},
            {"key": "operador", "label": "Operador", "kind": "select",
             "options": ["==", "!=", ">", "<", ">=", "<="], "required": True},
            {"key": "valor", "label": "Valor", "kind": "text", "required": True},
        ],
    },
    {
        "type": "pesquisa_satisfacao",
        "label": "Pesquisa de Satisfação",
        "icon": "Star",
        "category": "Atendimento",
        "color": "amber",
        "description": "Pesquisa de satisfação",
        "configFields": [
            {"key": "pergunta", "label": "Pergunta", "kind": "textarea", "required": True},
            {"key": "tipoResposta", "label": "Tipo de Resposta", "kind": "select",
             "options": [{"value": "estrelas", "label": "Estrelas (1 a 5)"}, {"value": "texto", "label": "Texto livre"}],
             "required": True},
        ],
    },
    # Handoff blocks end the automated part of the conversation
    {
        "type": "transferencia_departamento",
        "label": "Transferir para Departamento",
        "icon": "Building2",
        "category": "Atendimento",
        "color": "indigo",
        "description": "Transferir para um departamento",
        "configFields": [
            {"key": "departamentoId", "label": "Departamento", "kind": "selectDepartment", "required": True},
        ],
    },
    {
        "type": "transferencia_agente",
        "label": "Transferir para Agente",
        "icon": "UserCheck",
        "category": "Atendimento",
        "color": "cyan",
        "description": "Transferir para um agente específico",
        "configFields": [
            {"key": "agenteId", "label": "Agente", "kind": "selectAgent", "required": True},
        ],
    },
    {
        "type": "transferencia_time",
        "label": "Transferir para Time",
        "icon": "Users",
        "category": "Atendimento",
        "color": "red",
        "description": "Transferir para um time de atendimento",
        "configFields": [
            {"key": "teamId", "label": "Time", "kind": "selectTeam", "required": True},
        ],
    },
    {
        "type": "transferencia_ia",
        "label": "Transferir para IA",
        "icon": "Bot",
        "category": "IA",
        "color": "teal",
        "description": "Transferir para assistente de IA",
        "configFields": [
            {"key": "agenteIaId", "label": "Agente de IA", "kind": "selectAIAgent", "required": True},
        ],
    },
    {
        "type": "encerrar",
        "label": "Encerrar",
        "icon": "Square",
        "category": "Atendimento",
        "color": "red",
        "description": "Finalizar o atendimento",
        "configFields": [
            {"key": "mensagem", "label": "Mensagem de Encerramento", "kind": "textarea", "required": False},
        ],
    },
]

# Fixed output ports per block type; types not listed have a single default output
BLOCK_OUTPUT_HANDLES = {
    "decisao": ["sim", "nao"],
    "condicao": ["verdadeiro", "falso"],
    "horario": ["true", "false"],
}

# Block types that end the conversation branch and expose no output port
TERMINAL_BLOCK_TYPES = {
    "encerrar",
    "transferencia_departamento",
    "transferencia_agente",
    "transferencia_time",
    "transferencia_ia",
}

# Block types without an input port
ENTRY_BLOCK_TYPES = {"inicio"}
