# inference collaborator: langchain-powered gemini calls
# chat replies, journal sentiment, behavioral pattern candidates and journaling prompts
#
# the collaborator is slow and unreliable: every call is raced against a timer.
# a timeout raises CollaboratorTimeoutError, any other failure CollaboratorError;
# callers decide whether to default or surface.

import asyncio
import json
import logging
import re
import time
from typing import Any, Optional

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.output_parsers import StrOutputParser

from journey.config import settings
from journey.errors import CollaboratorError, CollaboratorTimeoutError

logger = logging.getLogger(__name__)

# conversation turns forwarded to the model
MAX_HISTORY_TURNS = 6

CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def get_llm(temperature: float, max_output_tokens: int) -> ChatGoogleGenerativeAI:
    """create a gemini llm instance"""
    return ChatGoogleGenerativeAI(
        model=settings.GEMINI_MODEL,
        google_api_key=settings.GEMINI_API_KEY,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
    )


def parse_ai_json(text: str, fallback: Any) -> Any:
    """parse json from a model reply, tolerating markdown code fences.
    returns fallback when the reply is not valid json."""
    if not text:
        return fallback
    cleaned = CODE_FENCE.sub("", text.strip()).strip()
    try:
        return json.loads(cleaned)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Could not parse model json reply: {cleaned[:80]}")
        return fallback


def build_system_prompt(profile: Optional[dict]) -> str:
    """companion persona, lightly personalized from the user's profile"""
    prompt = """You are a supportive, empathetic mental health companion. Your role is to:
- Listen without judgment
- Provide emotional support and validation
- Help users reflect on their feelings
- Suggest small, realistic steps to improve wellbeing
- Reframe negative thoughts in a constructive way"""
    if not profile:
        return prompt

    style = profile.get("communication_style")
    if style:
        prompt += f"\n\nCommunication style: keep your tone {style}."
    nickname = profile.get("nickname")
    if nickname:
        prompt += f"\nAddress the user as {nickname}."
    goals = profile.get("primary_goals") or []
    if goals:
        prompt += f"\nTheir wellness goals: {', '.join(goals[:5])}."
    return prompt


# chat reply: system persona + user context, then the conversation
CHAT_PROMPT = ChatPromptTemplate.from_messages([
    ("system", """{persona}

User context:
{user_summary}
{journey_context}

Be warm, genuine, and helpful. Keep responses concise but meaningful."""),
    ("placeholder", "{history}"),
    ("human", "{message}"),
])

SENTIMENT_PROMPT = ChatPromptTemplate.from_messages([
    ("system", """You are a warm, supportive friend who's great at noticing patterns and offering encouragement.
You speak casually like texting a close friend - never clinical or robotic.
You focus on specific things from their entry, not generic advice."""),
    ("human", """Someone just shared a journal entry with you. Respond warmly and specifically to what they wrote.

THEIR ENTRY:
Title: "{title}"
Content: "{content}"
{activities_line}

Respond in JSON:
{{
  "sentiment": <number from -1 to 1>,
  "sentimentLabel": "positive" or "neutral" or "negative",
  "feedback": "1-2 sentences responding specifically to what they shared."
}}

Keep feedback under 40 words. If their mood seems low, be extra gentle and validating.
Return ONLY valid JSON."""),
])

PATTERN_PROMPT = ChatPromptTemplate.from_messages([
    ("system", "{persona}"),
    ("human", """Analyze the user's behavioral patterns from their journal entries, mood data, and daily activities.

DATA SUMMARY:
{data_summary}

Look for activity correlations, recurring themes, mood variance, and temporal patterns.
Calculate confidence scores between 0.0 and 1.0 and only report patterns the data supports.

Respond in JSON:
{{
  "patterns": [
    {{
      "type": "temporal|activity|theme|correlation",
      "name": "Short descriptive name (max 40 chars)",
      "description": "2-3 sentence explanation of the pattern",
      "confidence": 0.85,
      "insights": "Why this pattern matters",
      "suggestions": "Specific, actionable steps"
    }}
  ]
}}

Return ONLY valid JSON. Include 2-5 most significant patterns (or an empty array if none found)."""),
])

PATTERN_PERSONA = (
    "You are an expert cognitive behavioral therapist and data analyst specializing in "
    "identifying behavioral patterns from journal data."
)

# smart journaling prompt: one short, personal question for today
SMART_PROMPT = ChatPromptTemplate.from_messages([
    ("system", "{persona}"),
    ("human", """Generate ONE concise journaling prompt for today.

CONTEXT:
{prompt_context}

Generate a thoughtful, personalized prompt that:
1. Acknowledges their patterns or goals if mentioned
2. Encourages reflection
3. Is specific and actionable
4. Is 1-2 sentences max
5. Feels conversational, not clinical

Return ONLY the prompt text, nothing else."""),
])

PROMPT_PERSONA = "You are a warm, supportive life coach who helps people reflect on their experiences."


class InferenceClient:
    """time-boxed gemini chains. chains are created lazily and reused."""

    def __init__(self, timeout_seconds: Optional[float] = None, sentiment_timeout_seconds: Optional[float] = None):
        self.timeout_seconds = timeout_seconds or settings.INFERENCE_TIMEOUT_SECONDS
        self.sentiment_timeout_seconds = sentiment_timeout_seconds or settings.SENTIMENT_TIMEOUT_SECONDS
        self._chat_chain = None
        self._sentiment_chain = None
        self._pattern_chain = None
        self._prompt_chain = None

    def get_chat_chain(self):
        if self._chat_chain is None:
            self._chat_chain = CHAT_PROMPT | get_llm(0.8, 300) | StrOutputParser()
        return self._chat_chain

    def get_sentiment_chain(self):
        if self._sentiment_chain is None:
            self._sentiment_chain = SENTIMENT_PROMPT | get_llm(0.7, 350) | StrOutputParser()
        return self._sentiment_chain

    def get_pattern_chain(self):
        if self._pattern_chain is None:
            # lower temperature for more consistent analysis
            self._pattern_chain = PATTERN_PROMPT | get_llm(0.3, 2000) | StrOutputParser()
        return self._pattern_chain

    def get_prompt_chain(self):
        if self._prompt_chain is None:
            self._prompt_chain = SMART_PROMPT | get_llm(0.8, 100) | StrOutputParser()
        return self._prompt_chain

    async def _invoke(self, label: str, chain, inputs: dict, timeout: float) -> str:
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(chain.ainvoke(inputs), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"{label} timed out after {timeout:.0f}s")
            raise CollaboratorTimeoutError(f"{label} timed out") from e
        except Exception as e:
            logger.error(f"{label} failed after {(time.monotonic() - start) * 1000:.0f}ms: {e}")
            raise CollaboratorError(f"{label} failed") from e
        logger.info(f"{label} completed in {(time.monotonic() - start) * 1000:.0f}ms")
        return result

    async def chat_reply(
        self,
        message: str,
        history: list[dict],
        user_summary: str,
        journey_context: str,
        profile: Optional[dict] = None,
    ) -> str:
        turns = [(turn["role"] if turn["role"] == "assistant" else "human", turn["content"])
                 for turn in history[-MAX_HISTORY_TURNS:]]
        reply = await self._invoke(
            "Chat reply",
            self.get_chat_chain(),
            {
                "persona": build_system_prompt(profile),
                "user_summary": user_summary,
                "journey_context": journey_context,
                "history": turns,
                "message": message,
            },
            self.timeout_seconds,
        )
        return reply.strip()

    async def analyze_sentiment(self, title: str, content: str, activities: list[str]) -> dict:
        raw = await self._invoke(
            "Sentiment analysis",
            self.get_sentiment_chain(),
            {
                "title": title,
                "content": content[:4000],
                "activities_line": f"They did these today: {', '.join(activities)}" if activities else "",
            },
            self.sentiment_timeout_seconds,
        )
        parsed = parse_ai_json(raw, {})
        return parsed if isinstance(parsed, dict) else {}

    async def propose_patterns(self, data_summary: str, profile: Optional[dict] = None) -> list:
        persona = PATTERN_PERSONA
        if profile:
            persona = build_system_prompt(profile) + "\n\nROLE: You are acting as an expert analyst identifying behavioral patterns."
        raw = await self._invoke(
            "Pattern detection",
            self.get_pattern_chain(),
            {"persona": persona, "data_summary": data_summary},
            self.timeout_seconds,
        )
        parsed = parse_ai_json(raw, {"patterns": []})
        if isinstance(parsed, dict):
            parsed = parsed.get("patterns", [])
        return parsed if isinstance(parsed, list) else []

    async def smart_prompt(self, prompt_context: str, profile: Optional[dict] = None) -> str:
        persona = build_system_prompt(profile) if profile else PROMPT_PERSONA
        reply = await self._invoke(
            "Smart prompt",
            self.get_prompt_chain(),
            {"persona": persona, "prompt_context": prompt_context},
            self.timeout_seconds,
        )
        return reply.strip().strip('"').strip()


# singleton instance
inference_client = InferenceClient()


def get_inference_client() -> InferenceClient:
    """dependency injection for the inference collaborator"""
    return inference_client
