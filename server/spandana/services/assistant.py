"""
Admin assistant.

A keyword dispatcher picks one database lookup for the admin's question; the
JSON result is embedded in the system prompt and a single chat completion
turns it into an answer.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from spandana.config import settings
from spandana.services import assistant_queries as queries
from spandana.services.prompt_management import get_prompt

logger = logging.getLogger(__name__)

EXAM_NAME_RE = re.compile(r"(?:exam|test|quiz)\s+(?:named|called|titled)?\s*[\"']?([^\"']+)[\"']?", re.I)
QUESTION_TEXT_RE = re.compile(r"(?:question|find|search)\s+(?:about|on|regarding)?\s*[\"']?([^\"']+)[\"']?", re.I)
PARTICIPANT_NAME_RE = re.compile(r"(?:participant|student|candidate|person)\s+(?:named|called|with name)\s+([A-Za-z\s]+)", re.I)
EMAIL_RE = re.compile(r"(?:email|e-mail)\s+([\w.-]+@[\w.-]+\.\w+)", re.I)
PHONE_RE = re.compile(r"(?:phone|mobile|number)\s+([0-9]{10})", re.I)
SCHOOL_RE = re.compile(r"(?:school|college|from)\s+([A-Za-z\s]+)", re.I)
TEAM_RE = re.compile(r"(?:team|group)\s+(?:named|called)?\s*[\"']?([^\"']+)[\"']?", re.I)
PERFORMANCE_NAME_RE = re.compile(r"(?:participant|student|candidate)\s+([A-Za-z\s]+)", re.I)

PARTICIPANT_WORDS = ("participant", "candidate", "student")
COUNT_WORDS = ("how many", "total", "count")
QUESTION_STATS_WORDS = (
    "total", "how many", "count", "statistics", "stats", "distribution", "breakdown", "question bank",
)
PERFORMANCE_WORDS = ("performance", "score", "result")


class AssistantError(Exception):
    """The assistant could not produce an answer."""


def _has_any(text: str, words) -> bool:
    return any(word in text for word in words)


def _question_context(db: Session, query: str, lower: str) -> Dict[str, Any]:
    if _has_any(lower, QUESTION_STATS_WORDS):
        try:
            return {"type": "question_stats", "data": queries.get_question_stats(db)}
        except SQLAlchemyError as e:
            logger.error("❌ Question stats lookup failed: %s", e)
            return {"type": "question_stats_error", "error": str(e)}

    if "category" in lower:
        return {"type": "questions_by_category", "data": queries.get_questions_by_category(db)}

    if "difficulty" in lower:
        return {"type": "questions_by_difficulty", "data": queries.get_questions_by_difficulty(db)}

    exam_match = EXAM_NAME_RE.search(query)
    if exam_match:
        exams = queries.search_exams(db, exam_match.group(1).strip())
        if exams:
            questions = queries.get_questions_by_exam(db, exams[0]["id"])
            return {"type": "questions_by_exam", "exam": exams[0], "data": questions, "count": len(questions)}

    text_match = QUESTION_TEXT_RE.search(query)
    if text_match:
        questions = queries.search_questions(db, text=text_match.group(1).strip(), limit=20)
        return {"type": "questions_search", "data": questions, "count": len(questions)}

    return {"type": "question_stats", "data": queries.get_question_stats(db)}


def _participant_search_params(query: str) -> Dict[str, str]:
    name_match = PARTICIPANT_NAME_RE.search(query)
    email_match = EMAIL_RE.search(query)
    phone_match = PHONE_RE.search(query)
    school_match = SCHOOL_RE.search(query)
    team_match = TEAM_RE.search(query)

    params: Dict[str, str] = {}
    if name_match:
        params["name"] = name_match.group(1).strip()
    if email_match:
        params["email"] = email_match.group(1)
    if phone_match:
        params["phone"] = phone_match.group(1)
    if school_match:
        params["school"] = school_match.group(1).strip()
    if team_match:
        params["team"] = team_match.group(1).strip()

    # Fall back to the word right after "participant"/"student"/"candidate"
    if not (name_match or email_match or phone_match):
        words = query.split()
        for i, word in enumerate(words):
            if i > 0 and _has_any(words[i - 1].lower(), PARTICIPANT_WORDS):
                if len(word) > 2:
                    params["name"] = word
                break
    return params


def parse_and_query_database(db: Session, query: str) -> Dict[str, Any]:
    """Pick the lookup for a free-text admin question; first matching rule wins."""
    lower = query.lower().strip()

    try:
        if "question" in lower or "questionbank" in lower:
            return _question_context(db, query, lower)

        if _has_any(lower, COUNT_WORDS) and _has_any(lower, PARTICIPANT_WORDS):
            stats = queries.get_overall_stats(db)
            return {"type": "participant_count", "data": stats, "totalParticipants": stats["totalParticipants"]}

        mentions_participant = _has_any(lower, PARTICIPANT_WORDS)
        if (
            "overall" in lower
            or ("total" in lower and not mentions_participant)
            or "summary" in lower
            or "statistics" in lower
            or "stats" in lower
        ):
            return {"type": "overall_stats", "data": queries.get_overall_stats(db)}

        if mentions_participant:
            participants = queries.search_participants(db, **_participant_search_params(query))
            if participants and _has_any(lower, PERFORMANCE_WORDS):
                return {
                    "type": "participant_performance",
                    "participant": participants[0],
                    "performance": queries.get_participant_performance(db, participants[0]["id"]),
                }
            return {"type": "participants", "data": participants, "count": len(participants)}

        if _has_any(lower, PERFORMANCE_WORDS):
            name_match = PERFORMANCE_NAME_RE.search(query)
            if name_match:
                participants = queries.search_participants(db, name=name_match.group(1).strip())
                if participants:
                    return {
                        "type": "participant_performance",
                        "participant": participants[0],
                        "performance": queries.get_participant_performance(db, participants[0]["id"]),
                    }

        if _has_any(lower, ("exam", "test", "quiz")):
            exam_match = EXAM_NAME_RE.search(query)
            if exam_match:
                exams = queries.search_exams(db, exam_match.group(1).strip())
                if exams:
                    return {"type": "exam_stats", "exam": exams[0], "stats": queries.get_exam_stats(db, exams[0]["id"])}
            else:
                return {"type": "exam_stats", "stats": queries.get_exam_stats(db)}

        if _has_any(lower, ("team", "leaderboard", "ranking")):
            teams = queries.get_team_stats(db)
            return {"type": "team_stats", "data": teams, "count": len(teams)}

        return {"type": "overall_stats", "data": queries.get_overall_stats(db)}

    except SQLAlchemyError as e:
        logger.error("❌ Assistant lookup failed: %s", e)
        return {"type": "error", "error": str(e)}


class AssistantService:
    """Answers admin questions about the competition data."""

    def __init__(self):
        self._client: Optional[OpenAI] = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=settings.openai_api_key)
        return self._client

    def build_messages(self, query: str, db_context: Dict[str, Any], history: List[dict]) -> List[dict]:
        system_prompt = get_prompt("assistant", db_context=json.dumps(db_context, default=str))["system_prompt"]
        recent = history[-settings.assistant_history_limit:] if settings.assistant_history_limit else []
        return [
            {"role": "system", "content": system_prompt},
            *recent,
            {"role": "user", "content": query},
        ]

    def complete(self, messages: List[dict]) -> str:
        if not settings.openai_api_key:
            raise AssistantError("OPENAI_API_KEY is not configured")

        try:
            completion = self.client.chat.completions.create(
                model=settings.assistant_model,
                messages=messages,
                temperature=settings.assistant_temperature,
                max_tokens=settings.assistant_max_tokens,
            )
        except OpenAIError as e:
            logger.error("❌ Assistant completion error: %s", e)
            raise AssistantError(f"OpenAI API error: {e}") from e

        content = completion.choices[0].message.content if completion.choices else None
        return content or get_prompt("assistant")["fallback_response"]

    def answer(self, db: Session, query: str, history: Optional[List[dict]] = None) -> Dict[str, Any]:
        context = parse_and_query_database(db, query)
        logger.info("🤖 Assistant query dispatched to %s", context.get("type"))
        messages = self.build_messages(query, context, history or [])
        return {"response": self.complete(messages), "context": context}


# Singleton instance
assistant_service = AssistantService()
