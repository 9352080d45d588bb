import logging
import time
from typing import Any, Dict, List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from config import Config
from models import TutorMessage, User, new_id, utcnow
from services.cache_service import get_cache_service
from services.database_service import get_database_service
from services.exceptions import AppError, NotFoundError, RateLimitError, ServiceUnavailableError, UsageLimitError
from services.text_utils import sanitize_user_input
from services.usage_service import get_usage_service

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000
HISTORY_TURNS = 10
RATE_LIMIT_WINDOW_SECONDS = 3600

SYSTEM_PROMPT = """You are an NCLEX tutor helping nursing students prepare for the NCLEX-RN and NCLEX-PN exams.

You cover all eight client-need categories: Management of Care, Safety and Infection Control,
Health Promotion and Maintenance, Psychosocial Integrity, Basic Care and Comfort,
Pharmacological Therapies, Reduction of Risk Potential and Physiological Adaptation.
You know every NextGen item format (SATA, ordered response, cloze, matrix, highlight,
bow-tie, case studies and hot spot) and teach with the NCSBN Clinical Judgment
Measurement Model: recognize cues, analyze cues, prioritize hypotheses, generate
solutions, take action, evaluate outcomes.

When explaining a concept, say why it matters on the exam, explain it plainly, give a
memory aid and finish with a short practice question. When reviewing a question, explain
why each option is right or wrong and name the test-taking strategy involved (ABCs,
Maslow, assess before intervening, acute before chronic, least restrictive first).
For medications include drug class, mechanism, key side effects and nursing implications.

Be encouraging and concise. You provide educational content only, not medical advice,
and you redirect off-topic requests back to NCLEX preparation."""


class TutorService:
    """AI tutor chat backed by a Gemini chat model"""

    def __init__(self, llm: Optional[Any] = None):
        self.db_service = get_database_service()
        self.usage = get_usage_service()
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            if not Config.GOOGLE_API_KEY:
                raise ServiceUnavailableError("AI tutor is not configured")
            self._llm = ChatGoogleGenerativeAI(
                model=Config.TUTOR_MODEL,
                google_api_key=Config.GOOGLE_API_KEY,
                temperature=0.4,
                max_output_tokens=1024,
                top_p=0.8,
                timeout=30,
                max_retries=2,
            )
        return self._llm

    def _response_text(self, response: Any) -> str:
        if isinstance(response, str):
            return response
        content = getattr(response, "content", None)
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            pieces = []
            for item in content:
                if isinstance(item, dict) and item.get("type") == "text":
                    pieces.append(item.get("text", ""))
                elif isinstance(item, str):
                    pieces.append(item)
            return "".join(pieces)
        return str(response)

    def _serialize_message(self, message: TutorMessage) -> Dict[str, Any]:
        return {
            "id": message.id,
            "role": message.role,
            "content": message.content,
            "created_at": message.created_at.isoformat() if message.created_at else None,
        }

    def _history(self, session, user_id: str, conversation_id: str) -> List[TutorMessage]:
        recent = (
            session.query(TutorMessage)
            .filter(TutorMessage.user_id == user_id, TutorMessage.conversation_id == conversation_id)
            .order_by(TutorMessage.created_at.desc(), TutorMessage.id.desc())
            .limit(HISTORY_TURNS * 2)
            .all()
        )
        return list(reversed(recent))

    def _build_messages(self, history: List[TutorMessage], message: str) -> List[BaseMessage]:
        messages: List[BaseMessage] = [SystemMessage(content=SYSTEM_PROMPT)]
        for item in history:
            if item.role == "assistant":
                messages.append(AIMessage(content=item.content))
            else:
                messages.append(HumanMessage(content=item.content))
        messages.append(HumanMessage(content=message))
        return messages

    def chat(self, user_id: str, message: str, conversation_id: Optional[str] = None) -> Dict[str, Any]:
        message = sanitize_user_input(message, max_length=MAX_MESSAGE_LENGTH + 1)
        if not message:
            raise AppError("Message is required")
        if len(message) > MAX_MESSAGE_LENGTH:
            raise AppError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

        if not get_cache_service().increment_rate_limit(
            f"tutor:{user_id}", limit=Config.TUTOR_RATE_LIMIT, window=RATE_LIMIT_WINDOW_SECONDS
        ):
            raise RateLimitError("Too many tutor requests. Please slow down.")

        llm = self.llm

        with self.db_service.session_scope() as session:
            user = session.get(User, user_id)
            if self.usage.remaining(session, user_id, "ai_chat_messages", user.subscription_tier) == 0:
                limit = self.usage.get_usage_summary(user_id, user.subscription_tier, session)["ai_chat_messages"]["limit"]
                raise UsageLimitError(
                    "ai_chat_messages", limit, 0,
                    f"You've reached your daily AI tutor limit ({limit} messages). Upgrade to Pro for unlimited access.",
                )

            if conversation_id:
                owner = (
                    session.query(TutorMessage.user_id)
                    .filter(TutorMessage.conversation_id == conversation_id)
                    .first()
                )
                if owner and owner[0] != user_id:
                    raise NotFoundError("Conversation not found")
            else:
                conversation_id = new_id()

            history = self._history(session, user_id, conversation_id)
            prompt = self._build_messages(history, message)

        sent_at = utcnow()
        start_time = time.time()
        try:
            reply = self._response_text(llm.invoke(prompt)).strip()
        except Exception as e:
            logger.error(f"Tutor model call failed for user {user_id}: {e}")
            raise ServiceUnavailableError("AI tutor is temporarily unavailable")
        if not reply:
            raise ServiceUnavailableError("AI tutor returned an empty response")
        logger.info(f"Tutor reply generated in {time.time() - start_time:.2f}s")

        with self.db_service.session_scope() as session:
            user = session.get(User, user_id)
            usage = self.usage.check_and_increment(session, user_id, "ai_chat_messages", user.subscription_tier)
            if not usage["allowed"]:
                raise UsageLimitError("ai_chat_messages", usage["limit"], 0)

            user_message = TutorMessage(user_id=user_id, conversation_id=conversation_id, role="user",
                                        content=message, created_at=sent_at)
            session.add(user_message)
            session.flush()
            assistant_message = TutorMessage(user_id=user_id, conversation_id=conversation_id, role="assistant",
                                             content=reply)
            session.add(assistant_message)
            session.flush()

            return {
                "conversation_id": conversation_id,
                "reply": reply,
                "message": self._serialize_message(assistant_message),
                "remaining_messages": usage["remaining"],
            }

    def get_conversation(self, user_id: str, conversation_id: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            messages = (
                session.query(TutorMessage)
                .filter(TutorMessage.user_id == user_id, TutorMessage.conversation_id == conversation_id)
                .order_by(TutorMessage.created_at, TutorMessage.id)
                .all()
            )
            if not messages:
                raise NotFoundError("Conversation not found")
            return {
                "conversation_id": conversation_id,
                "messages": [self._serialize_message(m) for m in messages],
            }


tutor_service: Optional[TutorService] = None


def get_tutor_service() -> TutorService:
    global tutor_service
    if tutor_service is None:
        tutor_service = TutorService()
    return tutor_service
