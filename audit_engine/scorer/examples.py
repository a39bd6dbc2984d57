"""Per-vertical example keywords substituted into recommendation messages."""
from typing import Dict, List, Optional

GENERIC = "generic"

# vertical -> formula dimension -> example phrases
VERTICAL_EXAMPLES: Dict[str, Dict[str, List[str]]] = {
    "language_learning": {
        "title": ["learn spanish", "language lessons", "speak fluently"],
        "subtitle": ["daily vocabulary practice", "native speaker audio", "grammar made easy"],
        "combos": ["learn spanish fast", "spanish lessons", "vocabulary builder"],
        "intent": ["learn", "best", "free lessons"],
        "description": ["speak confidently in 30 days", "trusted by millions of learners"],
    },
    "finance": {
        "title": ["budget planner", "expense tracker", "money manager"],
        "subtitle": ["track spending", "save money automatically", "bill reminders"],
        "combos": ["budget tracker", "expense planner", "savings goals"],
        "intent": ["track", "best budget app", "free"],
        "description": ["bank-level encryption", "save money every month"],
    },
    "health_fitness": {
        "title": ["home workout", "fitness tracker", "meditation"],
        "subtitle": ["daily exercise plan", "calorie counter", "sleep better"],
        "combos": ["home workout plan", "yoga for beginners", "step counter"],
        "intent": ["best workout", "free", "guide"],
        "description": ["see results in 30 days", "created by certified trainers"],
    },
    "productivity": {
        "title": ["task manager", "daily planner", "to do list"],
        "subtitle": ["organize your day", "habit tracker", "team calendar"],
        "combos": ["daily planner", "task tracker", "focus timer"],
        "intent": ["best planner", "get organized", "free"],
        "description": ["set up in minutes", "syncs securely across devices"],
    },
    "rewards": {
        "title": ["earn rewards", "cash back", "gift cards"],
        "subtitle": ["get paid to play", "daily bonuses", "instant payouts"],
        "combos": ["earn cash", "free gift cards", "cash back rewards"],
        "intent": ["earn", "get paid", "free"],
        "description": ["verified payouts", "cash out within 24 hours"],
    },
    "dating": {
        "title": ["meet singles", "dating app", "find love"],
        "subtitle": ["chat and match", "verified profiles", "local dates"],
        "combos": ["meet new people", "verified singles", "video dating"],
        "intent": ["meet", "best dating", "free chat"],
        "description": ["verified profiles", "safe and private messaging"],
    },
    "entertainment": {
        "title": ["stream movies", "live tv", "music player"],
        "subtitle": ["watch offline", "new episodes weekly", "ad free"],
        "combos": ["stream movies free", "live sports", "playlist maker"],
        "intent": ["watch", "best shows", "download"],
        "description": ["thousands of titles", "start watching instantly"],
    },
    GENERIC: {
        "title": ["primary keyword", "core feature", "category term"],
        "subtitle": ["key benefit", "secondary feature", "use case"],
        "combos": ["category keyword", "feature benefit"],
        "intent": ["learn", "best", "get"],
        "description": ["a clear benefit in the first line", "social proof"],
    },
}

_ALIASES = {
    "education": "language_learning",
    "language": "language_learning",
    "fitness": "health_fitness",
    "health": "health_fitness",
    "health_and_fitness": "health_fitness",
    "money": "finance",
    "finance_budgeting": "finance",
    "tasks": "productivity",
}


def normalize_vertical(vertical: Optional[str]) -> str:
    if not vertical:
        return GENERIC
    key = vertical.strip().lower().replace("-", "_").replace(" ", "_").replace("&", "and")
    key = _ALIASES.get(key, key)
    return key if key in VERTICAL_EXAMPLES else GENERIC


def examples_for(vertical: Optional[str], dimension: str, limit: int = 3) -> str:
    """Quoted, comma-separated examples for a vertical, falling back to generic ones."""
    registry = VERTICAL_EXAMPLES[normalize_vertical(vertical)]
    phrases = registry.get(dimension) or VERTICAL_EXAMPLES[GENERIC].get(dimension, [])
    return ", ".join(f"'{p}'" for p in phrases[:limit])
