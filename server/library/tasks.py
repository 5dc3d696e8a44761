import logging

from celery import shared_task
from django.db import transaction

from assistant.services import gemini
from library.documents import source_text
from library.models import ProcessingTask
from library.services import add_generated_content

logger = logging.getLogger(__name__)


def queue_processing(source, user, kind="generate"):
    task = ProcessingTask.objects.create(source=source, created_by=user, kind=kind)
    transaction.on_commit(lambda: process_source.delay(str(task.pk)))
    return task


@shared_task(name="library.process_source")
def process_source(task_id):
    """
    Admin pipeline: extract the text of a source, ask Gemini for study
    content and store it under the source.
    kind="append" sends the existing summary titles so only new material is created.
    """
    task = ProcessingTask.objects.select_related("source").get(pk=task_id)
    task.status = "processing"
    task.save(update_fields=["status"])
    source = task.source

    try:
        text = source_text(source)
        if not text.strip():
            task.finish("error", "Nenhum texto encontrado nos arquivos da fonte.")
            return task.status

        existing = list(source.summaries.values_list("title", flat=True)) if task.kind == "append" else None
        payload = gemini.generate_study_content(text, title=source.title, existing_titles=existing)
        created = add_generated_content(source, payload)
    except (gemini.AIServiceError, OSError) as e:
        logger.error("processing failed task=%s source=%s: %s", task.pk, source.pk, e)
        task.finish("error", str(e))
        return task.status
    except Exception:
        logger.exception("unexpected processing error task=%s source=%s", task.pk, source.pk)
        task.finish("error", "Erro inesperado ao processar a fonte.")
        return task.status

    if not any(created.values()):
        task.finish("error", "A IA não retornou conteúdo válido.")
        return task.status

    result = {key: [str(obj.pk) for obj in objs] for key, objs in created.items()}
    counts = ", ".join(f"{key}={len(ids)}" for key, ids in result.items())
    task.finish("success", f"Conteúdo gerado: {counts}", result)
    logger.info("processing done task=%s source=%s %s", task.pk, source.pk, counts)
    return task.status
