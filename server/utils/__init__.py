from ._enum import CONTENT_TYPES, VOTE_TYPES, DIFFICULTY, TASK_STATUS, TASK_KIND, XP_SOURCES, MOODS
