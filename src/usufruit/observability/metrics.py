"""Custom metrics for usufruit."""

import logfire

loan_events = logfire.metric_counter(
    "usufruit.loans.events", description="Loan events (borrow/return)"
)

search_requests = logfire.metric_counter(
    "usufruit.search.requests", description="Book searches by mode (lexical/hybrid/fallback)"
)

embedding_jobs = logfire.metric_counter(
    "usufruit.embeddings.jobs", description="Embedding job outcomes (succeeded/retried/failed)"
)

auth_failures = logfire.metric_counter(
    "usufruit.auth.denials", description="Authorization denials by kind"
)


def record_loan_event(event_type: str, library_id: str) -> None:
    loan_events.add(1, {"event_type": event_type, "library_id": library_id})


def record_search(mode: str) -> None:
    search_requests.add(1, {"mode": mode})


def record_embedding_job(outcome: str) -> None:
    embedding_jobs.add(1, {"outcome": outcome})


def record_denial(kind: str, action: str) -> None:
    auth_failures.add(1, {"kind": kind, "action": action})
