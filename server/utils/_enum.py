CONTENT_TYPES = [
    ("summary", "Resumo"),
    ("flashcard", "Flashcard"),
    ("question", "Questão"),
    ("mind_map", "Mapa mental"),
    ("audio_summary", "Resumo em áudio"),
    ("source", "Fonte"),
    ("link_file", "Link/Arquivo"),
]

VOTE_TYPES = ("hot", "cold")

DIFFICULTY = [
    ("Fácil", "Fácil"),
    ("Médio", "Médio"),
    ("Difícil", "Difícil"),
]

TASK_STATUS = [
    ("pending", "Pending"),
    ("processing", "Processing"),
    ("success", "Success"),
    ("error", "Error"),
]

TASK_KIND = [
    ("generate", "Generate"),
    ("append", "Append"),
]

XP_SOURCES = [
    ("QUESTION_ANSWER", "Question answer"),
    ("CHAT_VOTE_RECEIVED", "Chat vote received"),
    ("CONTENT_VOTE_RECEIVED", "Content vote received"),
    ("NOTEBOOK_VOTE_RECEIVED", "Notebook vote received"),
    ("STUDY_PLAN_GENERATED", "Study plan generated"),
    ("ADMIN_ADJUSTMENT", "Admin adjustment"),
]

MOODS = [
    ("Animado", "Animado"),
    ("Motivado", "Motivado"),
    ("Focado", "Focado"),
    ("Cansado", "Cansado"),
    ("Nervoso", "Nervoso"),
    ("Ansioso", "Ansioso"),
    ("Revoltado", "Revoltado"),
    ("Perdido", "Perdido"),
    ("Marcelando", "Marcelando"),
]
