from typing import Dict, List, Optional

CATEGORIES_BY_TOPIC: Dict[str, List[str]] = {
    "programming": ["Java", "Python", "Node.js", "React", ".NET Core", "Go"],
    "databases": ["SQL", "NoSQL", "Performance", "MySQL", "PostgreSQL", "Oracle"],
    "networking": ["Protocols", "Topologies", "Security", "Hardware", "General", "Cloud Networking"],
    "linux": ["Command Line", "System Admin", "Scripting", "Security", "General", "Kernel"],
    "cloud-native": ["Containers", "AWS", "Azure", "GCP", "Kubernetes", "Serverless"],
    "general-knowledge": ["History", "Geography", "Mathematics", "Arts", "Science", "Technology"],
}

AVAILABLE_TOPICS: List[str] = list(CATEGORIES_BY_TOPIC)
AVAILABLE_DIFFICULTIES = ("easy", "medium", "hard")

MIN_QUESTIONS = 1
MAX_QUESTIONS = 30
MIN_TIME_LIMIT = 10
MAX_TIME_LIMIT = 120


def categories_for(topic: str) -> List[str]:
    return list(CATEGORIES_BY_TOPIC.get(topic, []))


def validate_topic_category(topic: str, category: Optional[str]) -> None:
    """Raise ``ValueError`` unless ``category`` belongs to ``topic``.

    An empty category is allowed; the generator then picks freely inside the topic.
    """
    if topic not in CATEGORIES_BY_TOPIC:
        raise ValueError(f"Unknown topic: {topic}")
    if category and category not in CATEGORIES_BY_TOPIC[topic]:
        raise ValueError(f"Category {category!r} does not belong to topic {topic!r}")


def build_catalog() -> Dict[str, object]:
    return {
        "topics": AVAILABLE_TOPICS,
        "categories_by_topic": {topic: categories_for(topic) for topic in AVAILABLE_TOPICS},
        "difficulties": list(AVAILABLE_DIFFICULTIES),
        "limits": {
            "number_of_questions": {"min": MIN_QUESTIONS, "max": MAX_QUESTIONS},
            "time_limit": {"min": MIN_TIME_LIMIT, "max": MAX_TIME_LIMIT},
        },
    }
