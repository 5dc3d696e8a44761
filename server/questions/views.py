import logging

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from library.models import Question
from library.serializers import CommentSerializer, CommentVoteSerializer, VoteSerializer
from library.services import add_comment, vote_comment
from questions import selection, services
from questions.models import VIRTUAL_NOTEBOOKS, UserNotebookInteraction, UserQuestionAnswer
from questions.serializers import (
    AnswerSerializer,
    AnswerSubmitSerializer,
    ClearAnswersSerializer,
    NotebookCreateSerializer,
    NotebookInteractionSerializer,
    NotebookQuestionSerializer,
    NotebookSerializer,
)
from library.serializers import InteractionUpdateSerializer
from utils.permissions import IsOwnerOrAdmin

logger = logging.getLogger(__name__)


class NotebookViewSet(viewsets.ViewSet):
    """
    Question notebooks. `pk` is a notebook uuid or one of the virtual keys
    `all_questions` / `favorites_notebook`.

    /notebooks/                       grid (virtual + real), POST creates
    /notebooks/{pk}/questions/        filtered questions with the caller's answers
    /notebooks/{pk}/next/?after=      next unanswered question
    /notebooks/{pk}/answer/           save a finished attempt sequence
    /notebooks/{pk}/check/            grade an attempt without saving
    /notebooks/{pk}/stats/            progress, accuracy, leaderboard
    /notebooks/{pk}/clear/            delete the caller's answers
    """
    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"[^/]+"

    def _interactions(self, notebooks):
        qs = UserNotebookInteraction.objects.filter(user=self.request.user, notebook__in=notebooks)
        return {i.notebook_id: i for i in qs}

    def list(self, request):
        virtual, notebooks = services.notebook_grid(request.user, request.query_params.get("sort") or "temp")
        ctx = {"request": request, "interactions": self._interactions(notebooks)}
        return Response({
            "virtual": virtual,
            "notebooks": NotebookSerializer(notebooks, many=True, context=ctx).data,
        })

    @extend_schema(request=NotebookCreateSerializer, responses=NotebookSerializer)
    def create(self, request):
        ser = NotebookCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        notebook = services.create_notebook(request.user, **ser.validated_data)
        return Response(NotebookSerializer(notebook, context={"request": request}).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        notebook = services.get_notebook(pk)
        ctx = {"request": request, "interactions": self._interactions([notebook])}
        return Response(NotebookSerializer(notebook, context=ctx).data)

    def partial_update(self, request, pk=None):
        notebook = services.get_notebook(pk)
        self._check_owner(request, notebook)
        name = (request.data.get("name") or "").strip()
        if name:
            notebook.name = name
            notebook.save(update_fields=["name"])
        return Response(NotebookSerializer(notebook, context={"request": request}).data)

    def destroy(self, request, pk=None):
        notebook = services.get_notebook(pk)
        self._check_owner(request, notebook)
        notebook.delete()
        UserQuestionAnswer.objects.filter(notebook_id=str(pk)).delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    def _check_owner(self, request, notebook):
        perm = IsOwnerOrAdmin()
        if not perm.has_object_permission(request, self, notebook):
            self.permission_denied(request, message=perm.message)

    @action(detail=True, methods=["get"])
    def questions(self, request, pk=None):
        _, questions = services.notebook_questions(request.user, pk)
        filters = selection.QuestionFilters.from_params(request.query_params, pk)
        questions, seed = selection.select_questions(request.user, pk, questions, filters)

        answers = {
            str(a.question_id): a
            for a in UserQuestionAnswer.objects.filter(user=request.user, notebook_id=pk).select_related("question")
        }
        ctx = {"answers": answers}
        if filters.shuffle_options:
            ctx["shuffled_options"] = {str(q.pk): selection.shuffled_options(q, seed) for q in questions}
        return Response({
            "notebook_id": pk,
            "seed": seed,
            "count": len(questions),
            "results": NotebookQuestionSerializer(questions, many=True, context=ctx).data,
        })

    @action(detail=True, methods=["get"])
    def next(self, request, pk=None):
        _, questions = services.notebook_questions(request.user, pk)
        filters = selection.QuestionFilters.from_params(request.query_params, pk)
        questions, _ = selection.select_questions(request.user, pk, questions, filters)
        answered = {
            str(q) for q in UserQuestionAnswer.objects.filter(user=request.user, notebook_id=pk)
            .values_list("question_id", flat=True)
        }
        question = selection.next_unanswered(questions, answered, request.query_params.get("after"))
        if question is None:
            return Response({"question": None, "detail": "Parabéns! Você respondeu todas as questões deste filtro."})
        return Response({"question": NotebookQuestionSerializer(question).data})

    @extend_schema(request=AnswerSubmitSerializer, responses=dict)
    @action(detail=True, methods=["post"])
    def answer(self, request, pk=None):
        ser = AnswerSubmitSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        answer, created, xp_gained = services.answer_question(
            request.user, pk, str(ser.validated_data["question_id"]), ser.validated_data["attempts"],
        )
        question = answer.question
        return Response({
            "created": created,
            "answer": AnswerSerializer(answer).data,
            "xp_gained": xp_gained,
            "hints": services.revealed_hints(question, answer.attempts),
            "correct_answer": question.correct_answer,
            "explanation": question.explanation,
            "stats": request.user.get_stats(),
            "achievements": request.user.achievements,
        }, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)

    @extend_schema(request=AnswerSubmitSerializer, responses=dict)
    @action(detail=True, methods=["post"])
    def check(self, request, pk=None):
        ser = AnswerSubmitSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        _, ids = services.resolve_notebook(request.user, pk)
        qid = str(ser.validated_data["question_id"])
        if qid not in set(ids):
            raise services.AnswerError({"question_id": "A questão não pertence a este caderno."})
        question = Question.objects.get(pk=qid)
        return Response(services.check_attempt(question, ser.validated_data["attempts"]))

    @action(detail=True, methods=["get"])
    def stats(self, request, pk=None):
        return Response(services.notebook_stats(request.user, pk))

    @extend_schema(request=ClearAnswersSerializer, responses=dict)
    @action(detail=True, methods=["post"])
    def clear(self, request, pk=None):
        ser = ClearAnswersSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        ids = [str(q) for q in ser.validated_data.get("question_ids") or []]
        deleted = services.clear_answers(request.user, pk, ids or None)
        return Response({"deleted": deleted})

    def _real_notebook(self, pk):
        if pk in VIRTUAL_NOTEBOOKS:
            self.permission_denied(self.request, message="Cadernos virtuais não aceitam esta ação.")
        return services.get_notebook(pk)

    @extend_schema(request=InteractionUpdateSerializer, responses=NotebookInteractionSerializer)
    @action(detail=True, methods=["post"])
    def interaction(self, request, pk=None):
        notebook = self._real_notebook(pk)
        ser = InteractionUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        inter = services.update_notebook_interaction(
            request.user, notebook,
            is_read=ser.validated_data.get("is_read"),
            is_favorite=ser.validated_data.get("is_favorite"),
        )
        return Response(NotebookInteractionSerializer(inter).data)

    @extend_schema(request=VoteSerializer, responses=dict)
    @action(detail=True, methods=["post"])
    def vote(self, request, pk=None):
        notebook = self._real_notebook(pk)
        ser = VoteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return Response(services.vote_notebook(
            request.user, notebook, ser.validated_data["vote_type"], ser.validated_data["increment"],
        ))

    @extend_schema(request=CommentSerializer, responses=dict)
    @action(detail=True, methods=["post"])
    def comments(self, request, pk=None):
        notebook = self._real_notebook(pk)
        ser = CommentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return Response(add_comment(request.user, notebook, ser.validated_data["text"]), status=status.HTTP_201_CREATED)

    @extend_schema(request=CommentVoteSerializer, responses=dict)
    @action(detail=True, methods=["post"], url_path=r"comments/(?P<comment_id>[^/.]+)/vote")
    def comment_vote(self, request, pk=None, comment_id=None):
        notebook = self._real_notebook(pk)
        ser = CommentVoteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return Response(vote_comment(notebook, comment_id, ser.validated_data["vote_type"]))


class QuestionStatsViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated]

    def retrieve(self, request, pk=None):
        question = Question.objects.filter(pk=pk).first() if services._is_uuid(pk) else None
        if question is None:
            return Response({"detail": "Questão não encontrada."}, status=status.HTTP_404_NOT_FOUND)
        return Response(services.question_stats(question))
