"""Answer generation: retrieval-augmented, conversation-aware."""

import asyncio
import logging
import time
from typing import List, Optional

from chatpdf.core.exceptions import DatabaseError, OperationTimeoutError
from chatpdf.models.conversation import Message
from chatpdf.models.document import RetrievedChunk
from chatpdf.models.response import Answer, Source, StructuredAnswer
from chatpdf.monitoring.metrics import answer_latency_seconds, answers_total
from chatpdf.services.conversation_store import ConversationStore
from chatpdf.services.embedding import EmbeddingService
from chatpdf.services.llm import LLMService
from chatpdf.services.retriever import Retriever

logger = logging.getLogger(__name__)


def build_sources(chunks: List[RetrievedChunk], answer: StructuredAnswer) -> List[Source]:
    """Describe the passages given to the model, flagging the cited ones."""
    cited = set(answer.citations)
    return [
        Source(
            chunk_index=chunk.chunk_index,
            start=chunk.start,
            end=chunk.end,
            score=chunk.score,
            cited=number in cited,
        )
        for number, chunk in enumerate(chunks, start=1)
    ]


class AnswerGenerator:
    """Answers questions about one document within one conversation."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        retriever: Retriever,
        conversation_store: ConversationStore,
        llm_service: LLMService,
        top_k: int,
        max_history_messages: int,
    ) -> None:
        """
        Initialize the answer generator.

        Args:
            embedding_service: Embeds questions with the indexer's model.
            retriever: Supplies grounding passages.
            conversation_store: Session history.
            llm_service: Generation backend.
            top_k: Passages retrieved per question.
            max_history_messages: Most recent turns sent to the model.
        """
        self.embedding_service = embedding_service
        self.retriever = retriever
        self.conversation_store = conversation_store
        self.llm_service = llm_service
        self.top_k = top_k
        self.max_history_messages = max_history_messages

    def _window(self, history: List[Message]) -> List[Message]:
        if self.max_history_messages <= 0:
            return []
        return history[-self.max_history_messages:]

    async def _record_question(self, session_id: str, message: Message) -> None:
        """Append an unanswered question; a storage failure is only logged."""
        try:
            await self.conversation_store.append(session_id, message)
        except DatabaseError as e:
            logger.error(
                f"Failed to record unanswered question in conversation "
                f"{session_id}: {str(e)}")

    async def answer(
        self,
        document_id: str,
        session_id: str,
        question: str,
        timeout: Optional[float] = None,
    ) -> Answer:
        """
        Answer a question and record the exchange in the conversation.

        The question and answer are appended together after a successful
        generation. When generation fails or times out only the question is
        appended. Failures before generation append nothing.

        Args:
            document_id: Document the conversation is about.
            session_id: Conversation id.
            question: The user's question.
            timeout: Deadline in seconds for the embedding and generation calls.

        Returns:
            Answer text with the passages it was grounded on.

        Raises:
            DocumentNotReadyError: If the document is not ready.
            GenerationError: If the language model fails.
            OperationTimeoutError: If a backend call exceeds the deadline.
        """
        start_time = time.time()

        query_vector = await self.embedding_service.generate_embedding(
            question, timeout=timeout)
        chunks = await self.retriever.retrieve(document_id, query_vector, self.top_k)
        history = await self.conversation_store.read(session_id)

        question_message = Message.human(question)
        try:
            generation = self.llm_service.generate_answer(
                question, chunks, self._window(history))
            if timeout is not None:
                structured = await asyncio.wait_for(generation, timeout=timeout)
            else:
                structured = await generation
        except asyncio.TimeoutError as e:
            await self._record_question(session_id, question_message)
            raise OperationTimeoutError(
                f"Generation timed out after {timeout}s") from e
        except Exception:
            await self._record_question(session_id, question_message)
            raise

        sources = build_sources(chunks, structured)
        answer_message = Message.assistant(
            structured.answer,
            document_id=document_id,
            sources=[source.model_dump() for source in sources],
        )
        await self.conversation_store.extend(
            session_id, [question_message, answer_message])

        answers_total.inc()
        answer_latency_seconds.observe(time.time() - start_time)
        logger.info(
            f"Answered question in conversation {session_id} "
            f"with {len(chunks)} passages in {time.time() - start_time:.2f}s")

        return Answer(
            answer=structured.answer,
            sources=sources,
            confidence=structured.confidence,
        )
