"""Reference documents every deployment needs before bots can be created."""

from __future__ import annotations

from typing import Any, Dict, List

from .client import DatabaseClient


REFERENCE_DOCUMENTS: Dict[str, List[Dict[str, Any]]] = {
    "models": [
        {
            "title": "Llama 2 70B Chat",
            "name": "meta/llama-2-70b-chat",
            "description": "General purpose chat model with a large context of world knowledge.",
        },
        {
            "title": "Llama 3 70B Instruct",
            "name": "meta/meta-llama-3-70b-instruct",
            "description": "Instruction tuned model that follows detailed prompts closely.",
        },
    ],
    "configurations": [
        {
            "name": "default",
            "title": "Default",
            "description": "Balanced answers suitable for most assistants.",
            "data": {"maxTokens": 800, "temperature": 0.75, "topP": 0.9},
        },
        {
            "name": "advanced",
            "title": "Advanced",
            "description": "Longer and more exploratory answers.",
            "data": {"maxTokens": 2000, "temperature": 0.9, "topP": 0.95},
        },
        {
            "name": "custom",
            "title": "Custom",
            "description": "Use the token limit, temperature and top p set on the bot.",
            "data": None,
        },
    ],
    "prompts": [
        {
            "name": "who-are-you",
            "subject": "Who are you?",
            "placeholder": "You are a helpful assistant called ...",
        },
        {
            "name": "how-to-answer",
            "subject": "How should you answer?",
            "placeholder": "Answer briefly and ask a follow up question when something is unclear.",
        },
        {
            "name": "what-to-avoid",
            "subject": "What should you avoid?",
            "placeholder": "Never discuss topics unrelated to ...",
        },
    ],
    "languages": [
        {"title": "English", "name": "english", "country_code": "GB"},
        {"title": "Swedish", "name": "swedish", "country_code": "SE"},
    ],
}


def seed_reference_data(db: DatabaseClient) -> Dict[str, int]:
    """Upsert the bundled reference documents and return counts per collection."""

    return {kind: db.upsert_reference_documents(kind, documents) for kind, documents in REFERENCE_DOCUMENTS.items()}


__all__ = ["REFERENCE_DOCUMENTS", "seed_reference_data"]
