"""Prompt template library for text insight, vision completion, and cast stages.

Responsibilities:
- Centralize prompt construction for every text-generation call.
- Keep prompts deterministic for a given input and option set.
"""

from __future__ import annotations

from .models.datatypes import PodcastMode, Section, SpeedMode
from .providers.base import ChatMessage


class PromptLibrary:
    """Build chat message lists for supported pipeline calls."""

    def analysis_messages(self, text: str, detected_language: str) -> list[ChatMessage]:
        """Return the six-section structured analysis prompt."""

        descriptions = {
            Section.ORIGINAL: "The original text as-is",
            Section.WORD_BY_WORD: "Word-by-word or character-by-character explanation with meanings",
            Section.STRUCTURE: "Grammatical structure analysis (sentence patterns, parts of speech)",
            Section.TRANSLATION: "Accurate translation to the user's target language",
            Section.COLLOQUIAL: "A more colloquial/conversational version of the same meaning",
            Section.SIMPLIFIED: "A simplified version using easier vocabulary",
        }
        section_lines = "\n".join(f"{section.tag} {descriptions[section]}" for section in Section)
        system_prompt = (
            "You are a language analysis assistant. Analyze the given text and provide a "
            "structured response with exactly these six sections, each on its own line "
            "prefixed by the section tag:\n\n"
            f"{section_lines}\n\n"
            "Keep each section concise but informative. Output all six sections in order.\n"
            "Do not add any extra commentary outside the section tags."
        )
        user_prompt = f"Detected language: {detected_language}\n\nText to analyze:\n{text}"
        return [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=user_prompt),
        ]

    def completion_messages(self, ocr_text: str) -> list[ChatMessage]:
        """Return the OCR completion prompt; the reply is appended after the OCR text."""

        system_prompt = (
            "You are an OCR post-processing assistant. The user provides text recognized by "
            "OCR from a screenshot, which may be truncated at the edges of the captured region. "
            "Output only the text that most plausibly continues or completes the recognized "
            "text. Do not repeat the recognized text and do not add commentary. "
            "If nothing is missing, output nothing.\n\n"
            "Be conservative and only infer content when you have high confidence."
        )
        return [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=f"OCR recognized text:\n{ocr_text}"),
        ]

    def script_messages(
        self,
        content: str,
        *,
        target_language: str,
        speed: SpeedMode,
        mode: PodcastMode,
    ) -> list[ChatMessage]:
        """Return the podcast script generation prompt for one option combination."""

        if mode is PodcastMode.BILINGUAL:
            mode_instruction = (
                "Generate a bilingual podcast script. Alternate between the original language "
                "and the target language. For each key phrase or sentence, first present it "
                "in the original language, then explain it in the target language."
            )
        else:
            mode_instruction = (
                "Generate an immersive podcast script entirely in the target language. "
                "Explain the content naturally as if teaching a language learner, using only "
                "the target language."
            )

        if speed is SpeedMode.SLOW:
            speed_instruction = (
                "Use short, simple sentences. Pause between ideas. Speak slowly and clearly."
            )
        else:
            speed_instruction = "Use natural conversational pace and sentence length."

        system_prompt = (
            "You are a language learning podcast host. Your job is to transform the given "
            "content into an engaging spoken explanation that helps learners understand the "
            "material.\n\n"
            f"Target language: {target_language}\n"
            f"{mode_instruction}\n"
            f"{speed_instruction}\n\n"
            "Output ONLY the podcast script text, ready to be read aloud. Use paragraph breaks "
            "to separate segments. Do not include stage directions or metadata."
        )
        return [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=content),
        ]
