"""
Function tools exposed to the live voice agent.

Each handler returns a short text result for the model; `navigate_to`
also returns a command the consumer forwards to the client.
"""
import json
import logging

from google.genai import types

from library.models import AudioSummary, Flashcard, Source, Summary
from questions.models import QuestionNotebook

logger = logging.getLogger(__name__)

VIEWS = [
    {"name": "Fontes", "admin_only": False},
    {"name": "Resumos", "admin_only": False},
    {"name": "Flashcards", "admin_only": False},
    {"name": "Questões", "admin_only": False},
    {"name": "Mapas Mentais", "admin_only": False},
    {"name": "Mídia", "admin_only": False},
    {"name": "Links e Arquivos", "admin_only": False},
    {"name": "Comunidade", "admin_only": False},
    {"name": "Perfil", "admin_only": False},
    {"name": "Contagem", "admin_only": False},
    {"name": "Admin", "admin_only": True},
]

SEARCHABLE = {
    "Resumos": (Summary, "title"),
    "Questões": (QuestionNotebook, "name"),
    "Fontes": (Source, "title"),
    "Flashcards": (Flashcard, "front"),
    "Mídia": (AudioSummary, "title"),
}

QUERYABLE_TABLES = {
    "question_notebooks": (QuestionNotebook, ("id", "name", "question_ids", "hot_votes", "cold_votes", "created_at")),
    "sources": (Source, ("id", "title", "summary", "topic", "subtopic", "hot_votes", "cold_votes", "created_at")),
}
MAX_ROWS = 20


def visible_views(user):
    is_admin = bool(user and getattr(user, "is_admin", False))
    return [v for v in VIEWS if is_admin or not v["admin_only"]]


def find_content(view_name, search_term):
    target = SEARCHABLE.get(view_name)
    if target is None:
        return "[]"
    model, field = target
    rows = model.objects.filter(**{f"{field}__icontains": (search_term or "").strip()}).values("id", field)[:MAX_ROWS]
    return json.dumps([{"name": r[field], "id": str(r["id"])} for r in rows], ensure_ascii=False)


def navigate_to(user, view_name, item_id=None, sub_item_id=None, term=None):
    """Returns (message, command or None)."""
    wanted = (view_name or "").strip().lower()
    view = next((v for v in visible_views(user) if v["name"].lower() == wanted), None)
    if view is None:
        return f"Tela '{view_name}' não encontrada.", None

    name = view["name"]
    if term:
        return f"Filtrando '{term}' em {name}.", {"type": "navigate", "view": name, "term": term}
    if item_id:
        command = {"type": "navigate", "view": name, "item_id": item_id}
        if sub_item_id:
            command["sub_item_id"] = sub_item_id
        return f"Abrindo item em {name}.", command
    return f"Navegando para {name}.", {"type": "navigate", "view": name}


def query_table(table_name, columns="*", filter_column=None, filter_value=None):
    target = QUERYABLE_TABLES.get(table_name)
    if target is None:
        return json.dumps({"error": f"Tabela '{table_name}' não permitida."}, ensure_ascii=False)
    model, allowed = target

    if not columns or columns.strip() == "*":
        fields = list(allowed)
    else:
        fields = [c.strip() for c in columns.split(",") if c.strip()]
        unknown = [c for c in fields if c not in allowed]
        if unknown:
            return json.dumps({"error": f"Colunas desconhecidas: {', '.join(unknown)}"}, ensure_ascii=False)

    qs = model.objects.all()
    if filter_column:
        if filter_column not in allowed:
            return json.dumps({"error": f"Coluna de filtro desconhecida: {filter_column}"}, ensure_ascii=False)
        qs = qs.filter(**{f"{filter_column}__icontains": filter_value or ""})
    rows = list(qs.values(*fields)[:MAX_ROWS])
    return json.dumps(rows, ensure_ascii=False, default=str)


def run_tool(user, name, args):
    """Dispatch a model function call. Returns (result text, client command or None)."""
    args = dict(args or {})
    if name == "findContent":
        return find_content(args.get("viewName"), args.get("searchTerm")), None
    if name == "navigateTo":
        return navigate_to(user, args.get("viewName"), args.get("itemId"), args.get("subItemId"), args.get("term"))
    if name == "queryTable":
        return query_table(
            args.get("tableName"), args.get("columns") or "*", args.get("filterColumn"), args.get("filterValue"),
        ), None
    logger.warning("unknown tool call %s", name)
    return f"Ferramenta '{name}' desconhecida.", None


FUNCTION_DECLARATIONS = [
    types.FunctionDeclaration(
        name="findContent",
        description="Procura conteúdo pelo nome numa tela (Resumos, Questões, Fontes, Flashcards, Mídia). "
                    "Retorna uma lista JSON de {name, id}.",
        parameters=types.Schema(
            type=types.Type.OBJECT,
            properties={
                "viewName": types.Schema(type=types.Type.STRING, description="Tela onde procurar."),
                "searchTerm": types.Schema(type=types.Type.STRING, description="Trecho do nome procurado."),
            },
            required=["viewName", "searchTerm"],
        ),
    ),
    types.FunctionDeclaration(
        name="navigateTo",
        description="Leva o aluno para uma tela, opcionalmente abrindo um item ou filtrando por um termo.",
        parameters=types.Schema(
            type=types.Type.OBJECT,
            properties={
                "viewName": types.Schema(type=types.Type.STRING, description="Nome da tela."),
                "itemId": types.Schema(type=types.Type.STRING, description="Id do item a abrir."),
                "subItemId": types.Schema(type=types.Type.STRING, description="Id de um subitem, ex.: questão do caderno."),
                "term": types.Schema(type=types.Type.STRING, description="Termo de filtro; tem prioridade sobre itemId."),
            },
            required=["viewName"],
        ),
    ),
    types.FunctionDeclaration(
        name="queryTable",
        description="Consulta somente leitura às tabelas question_notebooks ou sources (máx. 20 linhas).",
        parameters=types.Schema(
            type=types.Type.OBJECT,
            properties={
                "tableName": types.Schema(type=types.Type.STRING, description="question_notebooks ou sources."),
                "columns": types.Schema(type=types.Type.STRING, description="Colunas separadas por vírgula ou *."),
                "filterColumn": types.Schema(type=types.Type.STRING),
                "filterValue": types.Schema(type=types.Type.STRING),
            },
            required=["tableName"],
        ),
    ),
]
