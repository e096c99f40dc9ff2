"""Intent, emotion and entity analysis with response strategy derivation."""

import logging
import re
from typing import TYPE_CHECKING, Dict, List, Optional

from schemas.context import ConversationContext
from schemas.nlu import (
    BasicInfo,
    BusinessSignals,
    ContextAnalysis,
    EmotionResult,
    IntentResult,
    NLUResult,
    ResponseStrategy,
)
from schemas.responses import GenerationOptions
from .entities import EntityExtractor, EMAIL_PATTERN, PHONE_PATTERN
from .patterns import (
    AI_EMOTIONS,
    AI_INTENTS,
    BUSINESS_KEYWORDS,
    COMMERCIAL_KEYWORDS,
    EMOTION_CATEGORIES,
    ENGLISH_WORDS,
    ESCALATION_KEYWORDS,
    INDONESIAN_WORDS,
    INTENSITY_MARKERS,
    INTENT_CATEGORIES,
    PERSONALITY_HINTS,
    URGENCY_MARKERS,
    best_category,
    contains_any,
    count_matches,
)

if TYPE_CHECKING:
    from llm.provider_pool import ProviderPool

logger = logging.getLogger(__name__)


class NLUAnalyzer:
    """
    Rule-based analysis, optionally refined by an AI classifier.

    The AI result replaces the rule-based one only when its confidence is
    above AI_CONFIDENCE_THRESHOLD. No method raises; failures degrade to a
    neutral analysis.
    """

    AI_CONFIDENCE_THRESHOLD = 0.7

    INTENT_PROMPT = """Analyze the following message and determine the user's intent.
Consider the context and return the most likely intent.

Message: "{text}"
Context: {context}

Possible intents: {labels}

Respond with only the intent name and confidence score (0-1) in format: "intent:confidence\""""

    EMOTION_PROMPT = """Analyze the emotional tone of the following message.
Consider the context and return the primary emotion.

Message: "{text}"
Context: {context}

Possible emotions: {labels}

Respond with emotion name, confidence (0-1), and intensity (low/medium/high) in format: "emotion:confidence:intensity\""""

    def __init__(
        self,
        provider_pool: Optional["ProviderPool"] = None,
        entity_extractor: Optional[EntityExtractor] = None,
        use_ai: bool = True
    ):
        """
        Initialize NLU analyzer.

        Args:
            provider_pool: Pool used for AI classification (rule-based only if None)
            entity_extractor: Entity extractor (default lexicon if None)
            use_ai: Whether to request AI classifications
        """
        self.provider_pool = provider_pool
        self.entity_extractor = entity_extractor or EntityExtractor()
        self.use_ai = use_ai and provider_pool is not None

    async def analyze(self, text: str, context: Optional[ConversationContext] = None) -> NLUResult:
        """
        Run the full analysis over one message.

        Args:
            text: User message
            context: Conversation context

        Returns:
            NLUResult; a neutral default analysis if anything fails
        """
        try:
            intent = await self.detect_intent(text, context)
            emotion = await self.detect_emotion(text, context)
            entities = self.extract_entities(text)
            context_analysis = self.analyze_context(text, context)
            strategy = self.derive_strategy(intent, emotion, entities, context_analysis)

            return NLUResult(
                input=text,
                basic_info=self.extract_basic_info(text),
                intent=intent,
                emotion=emotion,
                entities=entities,
                context_analysis=context_analysis,
                strategy=strategy,
            )
        except Exception as e:
            logger.error(f"NLU processing failed: {e}")
            return self.fallback_analysis(text)

    # ------------------------------------------------------------------
    # Intent and emotion
    # ------------------------------------------------------------------

    def detect_rule_based_intent(self, text: str) -> IntentResult:
        """
        Keyword classification.

        Categories are ranked by their match ratio times weight; the winning
        category reports its weight as confidence.
        """
        best = best_category(text, INTENT_CATEGORIES)
        if best is None:
            return IntentResult()

        name, _score, _matched = best
        return IntentResult(
            name=name,
            confidence=INTENT_CATEGORIES[name].confidence,
            method="rule-based",
        )

    def detect_rule_based_emotion(self, text: str) -> EmotionResult:
        best = best_category(text, EMOTION_CATEGORIES)
        if best is None:
            return EmotionResult()

        name, _score, _matched = best
        return EmotionResult(
            name=name,
            confidence=EMOTION_CATEGORIES[name].confidence,
            intensity=self.emotion_intensity(text),
            method="rule-based",
        )

    @staticmethod
    def emotion_intensity(text: str) -> str:
        if contains_any(text, INTENSITY_MARKERS):
            return "high"
        if "!" in text:
            return "medium"
        return "low"

    @staticmethod
    def _context_hint(context: Optional[ConversationContext]) -> str:
        if not context or not context.message_history:
            return "new conversation"
        recent = context.message_history[-3:]
        return " | ".join(f"{m.role.value}: {m.content}" for m in recent)

    async def _classify(self, prompt: str) -> Optional[List[str]]:
        """Ask the pool for a short classification; None if unavailable."""
        response = await self.provider_pool.generate(
            prompt,
            None,
            GenerationOptions(max_tokens=50, temperature=0.3)
        )
        if not response.success:
            return None
        line = response.content.strip().strip('"').splitlines()[0]
        return [part.strip().lower() for part in line.split(":")]

    @staticmethod
    def _parse_confidence(value: str) -> float:
        try:
            return min(max(float(value), 0.0), 1.0)
        except ValueError:
            return 0.5

    async def detect_ai_based_intent(
        self,
        text: str,
        context: Optional[ConversationContext]
    ) -> Optional[IntentResult]:
        parts = await self._classify(self.INTENT_PROMPT.format(
            text=text,
            context=self._context_hint(context),
            labels=", ".join(AI_INTENTS),
        ))
        if not parts or parts[0] not in AI_INTENTS:
            return None

        return IntentResult(
            name=parts[0],
            confidence=self._parse_confidence(parts[1]) if len(parts) > 1 else 0.5,
            method="ai-based",
        )

    async def detect_ai_based_emotion(
        self,
        text: str,
        context: Optional[ConversationContext]
    ) -> Optional[EmotionResult]:
        parts = await self._classify(self.EMOTION_PROMPT.format(
            text=text,
            context=self._context_hint(context),
            labels=", ".join(AI_EMOTIONS),
        ))
        if not parts or parts[0] not in AI_EMOTIONS:
            return None

        intensity = parts[2] if len(parts) > 2 and parts[2] in ("low", "medium", "high") else "medium"
        return EmotionResult(
            name=parts[0],
            confidence=self._parse_confidence(parts[1]) if len(parts) > 1 else 0.5,
            intensity=intensity,
            method="ai-based",
        )

    async def detect_intent(self, text: str, context: Optional[ConversationContext] = None) -> IntentResult:
        """Rule-based intent, replaced by the AI intent when it is confident."""
        try:
            rule_based = self.detect_rule_based_intent(text)
        except Exception as e:
            logger.error(f"Intent detection failed: {e}")
            return IntentResult()

        ai_based = None
        if self.use_ai:
            try:
                ai_based = await self.detect_ai_based_intent(text, context)
            except Exception as e:
                logger.error(f"AI intent detection failed: {e}")

        if ai_based and ai_based.confidence > self.AI_CONFIDENCE_THRESHOLD:
            return ai_based
        return rule_based

    async def detect_emotion(self, text: str, context: Optional[ConversationContext] = None) -> EmotionResult:
        """Rule-based emotion, replaced by the AI emotion when it is confident."""
        try:
            rule_based = self.detect_rule_based_emotion(text)
        except Exception as e:
            logger.error(f"Emotion detection failed: {e}")
            return EmotionResult()

        ai_based = None
        if self.use_ai:
            try:
                ai_based = await self.detect_ai_based_emotion(text, context)
            except Exception as e:
                logger.error(f"AI emotion detection failed: {e}")

        if ai_based and ai_based.confidence > self.AI_CONFIDENCE_THRESHOLD:
            return ai_based
        return rule_based

    # ------------------------------------------------------------------
    # Entities, surface features, context
    # ------------------------------------------------------------------

    def extract_entities(self, text: str) -> Dict[str, List[str]]:
        try:
            return self.entity_extractor.extract(text)
        except Exception as e:
            logger.error(f"Entity extraction failed: {e}")
            return {}

    @staticmethod
    def detect_language(text: str) -> str:
        indonesian = count_matches(text, INDONESIAN_WORDS)
        english = count_matches(text, ENGLISH_WORDS)
        if indonesian > english:
            return "id"
        if english > indonesian:
            return "en"
        return "unknown"

    def extract_basic_info(self, text: str) -> BasicInfo:
        return BasicInfo(
            length=len(text),
            word_count=len(text.split()),
            has_question="?" in text,
            has_exclamation="!" in text,
            has_numbers=bool(re.search(r"\d", text)),
            has_email=bool(EMAIL_PATTERN.search(text)),
            has_phone=bool(PHONE_PATTERN.search(text)),
            has_url=bool(re.search(r"https?://\S+", text)),
            language=self.detect_language(text),
        )

    @staticmethod
    def conversation_flow(context: Optional[ConversationContext]) -> str:
        count = len(context.message_history) if context else 0
        if count == 0:
            return "new"
        if count < 3:
            return "beginning"
        if count < 10:
            return "developing"
        return "established"

    @staticmethod
    def topic_continuity(text: str, context: Optional[ConversationContext]) -> str:
        if not context or not context.message_history:
            return "new_topic"

        last_words = set(context.message_history[-1].content.lower().split())
        common = [w for w in text.lower().split() if len(w) > 3 and w in last_words]
        return "continuing" if len(common) > 2 else "new_topic"

    @staticmethod
    def urgency(text: str) -> str:
        if contains_any(text, URGENCY_MARKERS):
            return "high"
        if "!" in text:
            return "medium"
        return "normal"

    @staticmethod
    def complexity(text: str) -> str:
        word_count = len(text.split())
        question_count = text.count("?")
        multiple_topics = contains_any(text, ["and", "also"])

        if word_count > 50 or question_count > 2 or multiple_topics:
            return "high"
        if word_count > 20 or question_count > 1:
            return "medium"
        return "low"

    @staticmethod
    def personality_hints(text: str) -> List[str]:
        return [hint for hint, markers in PERSONALITY_HINTS.items() if contains_any(text, markers)]

    def analyze_context(self, text: str, context: Optional[ConversationContext] = None) -> ContextAnalysis:
        try:
            return ContextAnalysis(
                conversation_flow=self.conversation_flow(context),
                topic_continuity=self.topic_continuity(text, context),
                urgency=self.urgency(text),
                complexity=self.complexity(text),
                personality_hints=self.personality_hints(text),
                business=BusinessSignals(
                    is_business_inquiry=contains_any(text, BUSINESS_KEYWORDS),
                    requires_escalation=contains_any(text, ESCALATION_KEYWORDS),
                    has_commercial_intent=contains_any(text, COMMERCIAL_KEYWORDS),
                ),
            )
        except Exception as e:
            logger.error(f"Context analysis failed: {e}")
            return ContextAnalysis()

    # ------------------------------------------------------------------
    # Strategy
    # ------------------------------------------------------------------

    @staticmethod
    def _response_type(intent: IntentResult, emotion: EmotionResult) -> str:
        by_intent = {
            "greeting": "greeting",
            "question": "informational",
            "complaint": "supportive",
            "appreciation": "acknowledgment",
        }
        if intent.name in by_intent:
            return by_intent[intent.name]
        if emotion.name == "angry":
            return "calming"
        if emotion.name == "sad":
            return "empathetic"
        return "conversational"

    @staticmethod
    def _tone(intent: IntentResult, emotion: EmotionResult, analysis: ContextAnalysis) -> str:
        if intent.name == "complaint":
            return "calming"
        if emotion.name == "angry":
            return "calm"
        if emotion.name == "sad":
            return "empathetic"
        if emotion.name == "excited":
            return "enthusiastic"
        if analysis.urgency == "high":
            return "urgent"
        return "friendly"

    @staticmethod
    def _length(intent: IntentResult, analysis: ContextAnalysis) -> str:
        if analysis.complexity == "high":
            return "detailed"
        if intent.name == "greeting":
            return "short"
        if intent.name == "question":
            return "comprehensive"
        return "balanced"

    @staticmethod
    def _personality_type(emotion: EmotionResult, analysis: ContextAnalysis) -> str:
        if emotion.name in ("sad", "worried"):
            return "caring"
        if "formal" in analysis.personality_hints:
            return "professional"
        if "casual" in analysis.personality_hints:
            return "friendly"
        if "technical" in analysis.personality_hints:
            return "expert"
        return "friendly"

    @staticmethod
    def _follow_up_needed(intent: IntentResult, analysis: ContextAnalysis) -> bool:
        if intent.name == "complaint":
            return True
        if intent.name == "question" and analysis.complexity == "high":
            return True
        return analysis.urgency == "high"

    def derive_strategy(
        self,
        intent: IntentResult,
        emotion: EmotionResult,
        entities: Dict[str, List[str]],
        context_analysis: ContextAnalysis
    ) -> ResponseStrategy:
        """Deterministic mapping from the analysis to a response strategy."""
        try:
            return ResponseStrategy(
                response_type=self._response_type(intent, emotion),
                tone=self._tone(intent, emotion, context_analysis),
                length=self._length(intent, context_analysis),
                personality_type=self._personality_type(emotion, context_analysis),
                urgency=context_analysis.urgency,
                include_entities=any(entities.values()),
                follow_up_needed=self._follow_up_needed(intent, context_analysis),
            )
        except Exception as e:
            logger.error(f"Strategy generation failed: {e}")
            return ResponseStrategy()

    def fallback_analysis(self, text: str) -> NLUResult:
        """Neutral analysis used when processing fails."""
        try:
            basic_info = self.extract_basic_info(text)
        except Exception:
            basic_info = BasicInfo()
        return NLUResult(input=text, basic_info=basic_info)
