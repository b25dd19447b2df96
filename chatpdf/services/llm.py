"""OpenAI LLM service for grounded, conversational answers."""

import json
from typing import Dict, List, Optional

from openai import AsyncOpenAI

from chatpdf.core.config import settings
from chatpdf.core.exceptions import GenerationError
from chatpdf.models.conversation import Message, MessageRole
from chatpdf.models.document import RetrievedChunk
from chatpdf.models.response import StructuredAnswer

SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions about a PDF document "
    "using the numbered context passages below and the conversation so far. "
    "If the passages do not contain the answer, say so instead of guessing. "
    "You MUST respond with valid JSON only, no other text, matching this schema: "
    "{schema}\n"
    "List in `citations` the numbers of the passages you used.\n\n"
    "Context passages:\n{context}"
)


def build_context(chunks: List[RetrievedChunk]) -> str:
    """Number the retrieved passages for the prompt, starting at 1."""
    if not chunks:
        return "(no passages)"
    return "\n\n".join(
        f"[{number}] {chunk.content}" for number, chunk in enumerate(chunks, start=1)
    )


def build_messages(
    question: str, chunks: List[RetrievedChunk], history: List[Message]
) -> List[Dict[str, str]]:
    """
    Assemble the chat request for one question.

    Args:
        question: The new user question.
        chunks: Retrieved passages used as grounding context.
        history: Prior turns, oldest first.

    Returns:
        Chat-completion messages.
    """
    schema = json.dumps(StructuredAnswer.model_json_schema())
    messages = [
        {
            "role": "system",
            "content": SYSTEM_PROMPT.format(schema=schema, context=build_context(chunks)),
        }
    ]
    for turn in history:
        role = "user" if turn.role == MessageRole.HUMAN else "assistant"
        messages.append({"role": role, "content": turn.content})
    messages.append({"role": "user", "content": question})
    return messages


class LLMService:
    """Service for generating LLM responses with structured outputs."""

    def __init__(self) -> None:
        """Initialize the LLM service."""
        self.client: Optional[AsyncOpenAI] = None
        self.model = settings.llm_model

    async def connect(self) -> None:
        """Create the shared OpenAI client."""
        if self.client is None:
            self.client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.llm_timeout_seconds,
            )

    async def disconnect(self) -> None:
        """Close the OpenAI client."""
        if self.client:
            await self.client.close()
            self.client = None

    async def generate_answer(
        self, question: str, chunks: List[RetrievedChunk], history: List[Message]
    ) -> StructuredAnswer:
        """
        Generate a structured answer using the LLM.

        Args:
            question: User question.
            chunks: Retrieved context passages.
            history: Prior conversation turns.

        Returns:
            Structured answer with citations.

        Raises:
            GenerationError: If response generation fails.
        """
        if not self.client:
            raise GenerationError("LLM client not connected")

        content = ""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=build_messages(question, chunks, history),
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens,
                response_format={"type": "json_object"},
            )

            content = response.choices[0].message.content
            if not content:
                raise GenerationError("Empty response from LLM")

            data = json.loads(content)
            return StructuredAnswer(**data)
        except json.JSONDecodeError as e:
            raise GenerationError(
                f"Failed to parse LLM response as JSON: {str(e)}. Content: {content[:200]}") from e
        except (TypeError, ValueError) as e:
            raise GenerationError(
                f"Failed to process LLM response: {str(e)}") from e
        except Exception as e:
            if isinstance(e, GenerationError):
                raise
            raise GenerationError(f"Failed to generate response: {str(e)}") from e
