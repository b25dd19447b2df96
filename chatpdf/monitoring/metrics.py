"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

answers_total = Counter("chatpdf_answers_total",
                        "Total number of questions answered")
answer_errors_total = Counter(
    "chatpdf_answer_errors_total", "Total number of failed questions", ["reason"])
answer_latency_seconds = Histogram(
    "chatpdf_answer_latency_seconds", "Answer latency in seconds", buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0])

ingestion_jobs_total = Counter("chatpdf_ingestion_jobs_total",
                               "Total number of ingestion jobs received")
ingestion_outcomes_total = Counter(
    "chatpdf_ingestion_outcomes_total", "Ingestion job outcomes", ["outcome"])
ingestion_duration_seconds = Histogram(
    "chatpdf_ingestion_duration_seconds", "Ingestion processing duration", buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 180.0])
chunks_indexed_total = Counter(
    "chatpdf_chunks_indexed_total", "Total number of chunks written to the index")
embedding_duration_seconds = Histogram(
    "chatpdf_embedding_duration_seconds", "Time spent embedding one document", buckets=[0.5, 1.0, 5.0, 10.0, 30.0])
